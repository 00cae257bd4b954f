"""Constants used across blockmove.

Physics constants are tuned for visual pacing and must stay exact.
"""

# Frame pacing
FRAMES_PER_SECOND = 30
FRAME_INTERVAL_MS = 1000 // FRAMES_PER_SECOND

# Placeholder size until the client's pty request arrives
DEFAULT_TERM_WIDTH = 80
DEFAULT_TERM_HEIGHT = 24

# Reflection margins: the sprite bounces before it fully leaves the screen
MARGIN_X = 32
MARGIN_Y = 16

# Velocity magnitudes re-rolled on reflection
BURST_SPEED_X = 20.0
CRUISE_SPEED_X = 1.5
BURST_CHANCE_X = 1 / 2
BURST_SPEED_Y = 5.0
CRUISE_SPEED_Y = 1.0
BURST_CHANCE_Y = 1 / 5

# Fresh sessions start in the top-left corner moving back toward it
INITIAL_OFFSET = (0.0, 0.0)
INITIAL_VELOCITY = (-CRUISE_SPEED_X, -CRUISE_SPEED_Y)

# Euclidean speed above which the alarmed sprite is shown
ALARM_SPEED = 10.0

# Source rows are squashed by half to fit half-block cells
ROW_SQUASH = 0.5

# Terminal control sequences
ENTER_ALT_SCREEN = b"\x1b[?1049h"
EXIT_ALT_SCREEN = b"\x1b[?1049l"
HIDE_CURSOR = b"\x1b[?25l"
SHOW_CURSOR = b"\x1b[?25h"
CLEAR_SCREEN = b"\x1b[2J"
RESET_SEQUENCE = EXIT_ALT_SCREEN + SHOW_CURSOR

# Outbound frames buffered per session before the oldest is dropped
OUTBOUND_QUEUE_DEPTH = 4
# Seconds a closing session waits for its final bytes to flush
HANDLE_FLUSH_TIMEOUT = 1.0

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 2222
DEFAULT_QUIT_KEY = "q"
DEFAULT_CONFIG_PATH = "blockmove.yml"
HOST_KEY_ENV = "SECRETS_LOCATION"
