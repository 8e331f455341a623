# chatd wire protocol constants

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 50001
DEFAULT_BACKLOG = 3

# Milliseconds passed to poll(); the loop just goes around again on timeout.
DEFAULT_POLL_TIMEOUT_MS = 10000

# Maximum inbound line, terminator included.
DEFAULT_BUFFER_SIZE = 1024

DEFAULT_MAX_CLIENTS = 1000

# After an accept resource error (EMFILE, ENOBUFS) the listener is left
# unwatched this long before accepting again.
DEFAULT_ACCEPT_BACKOFF_MS = 1000

DEFAULT_REGISTRY_BUCKETS = 101

NAME_MAX_CHARS = 32
CHANNEL_NAME_MAX_LEN = 64

# Slot 0 of the multiplexer always watches the listening socket.
LISTENER_SLOT = 0

COMMAND_MARKER = "\\"

CMD_SETUSERNAME = "setusername"
CMD_EXIT = "exit"
CMD_JOIN = "join"

DEFAULT_NAME_PREFIX = "user"

# Relayed chat lines look like "<name>> <payload>\n".
CHAT_SEPARATOR = "> "
LINE_TERMINATOR = "\n"

WELCOME_BANNER = (
    "=============================\n"
    " Hello, Welcome in this chat \n"
    "=============================\n"
)

NOTICE_NAME_TAKEN = "Username already taken\n"
NOTICE_SERVER_FULL = "Server is full, try again later\n"
