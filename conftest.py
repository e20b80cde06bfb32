"""Global pytest configuration."""

import os

# Keep a developer's .env or shell overrides out of the test thresholds
for key in [k for k in os.environ if k.startswith("ITINERARY_")]:
    del os.environ[key]
