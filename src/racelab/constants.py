"""Constants for racelab."""

# Lock retry policy (acquire spins on a fixed delay)
DEFAULT_MAX_RETRIES = 500
DEFAULT_RETRY_DELAY_MS = 10

# Bounded buffer: slots, and how often a producer or consumer retries on full/empty
DEFAULT_BUFFER_CAPACITY = 5
DEFAULT_BUFFER_ATTEMPTS = 100

# Prefix for every artifact written to the work directory
ARTIFACT_PREFIX = "racelab"

CONFIG_FILENAME = "racelab.toml"

# Exit codes
EXIT_DEMO_FAILED = 1
EXIT_USAGE = 2
EXIT_CONFIG = 3
