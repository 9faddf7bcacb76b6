"""Protocol literals and default values for the RoadSense logger bridge."""

# Wire format
LINE_TERMINATOR = "\n"
PIPE_FRAME_TAG = "DATA"
PIPE_FRAME_FIELD_COUNT = 15
KEY_VALUE_FRAME_PREFIX = "RS2,"
RESPONSE_PREFIXES = ("ACK:", "NAK:", "ERR:", "STATUS")

# Transport
DEFAULT_BAUDRATE = 115200
DEFAULT_READ_TIMEOUT = 0.1  # seconds
DEFAULT_CHUNK_SIZE = 1024  # bytes
DEFAULT_MAX_LINE_LENGTH = 4096  # bytes
DEFAULT_CONNECT_TIMEOUT = 5.0  # seconds

# Commands
DEFAULT_COMMAND_ATTEMPTS = 3
DEFAULT_RESPONSE_TIMEOUT = 3.0  # seconds, per attempt
DEFAULT_RETRY_DELAY = 0.5  # seconds
DEFAULT_WAIT_FOR_RESPONSE_TIMEOUT = 5.0  # seconds

# Reconnect
RECONNECT_BASE_DELAY = 1.0  # seconds
RECONNECT_MAX_DELAY = 16.0  # seconds
RECONNECT_MULTIPLIER = 2.0
RECONNECT_MAX_ATTEMPTS = 5

# Roughness index breakpoints (upper bounds, exclusive)
ROUGHNESS_EXCELLENT_MAX = 2.0
ROUGHNESS_GOOD_MAX = 4.0
ROUGHNESS_FAIR_MAX = 6.0
ROUGHNESS_POOR_MAX = 8.0

# Sample quality ladder
MIN_MOVING_SPEED_KMH = 1.0
SPEED_WARNING_KMH = 60.0
MAX_REASONABLE_SPEED_KMH = 100.0
VIBRATION_SPIKE_THRESHOLD = 2.5
VIBRATION_EXTREME_THRESHOLD = 5.0
VIBRATION_MAX_VALID = 10.0
BATTERY_CRITICAL_VOLTAGE = 3.4
BATTERY_LOW_VOLTAGE = 3.6

# Calibration bounds
MIN_WHEEL_DIAMETER_CM = 20.0
MAX_WHEEL_DIAMETER_CM = 100.0
MIN_PULSES_PER_ROTATION = 1
MAX_PULSES_PER_ROTATION = 100
DEFAULT_WHEEL_DIAMETER_CM = 60.0
DEFAULT_PULSES_PER_ROTATION = 20
