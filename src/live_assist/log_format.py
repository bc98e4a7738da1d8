import logging

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
CYAN = "\033[36m"
MAGENTA = "\033[35m"

LEVEL_COLORS = {
    logging.DEBUG: DIM,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED + BOLD,
}

HIGHLIGHTS = (
    ("State:", BOLD + CYAN),
    ("Question:", BOLD + MAGENTA),
    ("Turn complete", CYAN),
    ("Reconnect", BOLD + YELLOW),
    ("Setup complete", GREEN),
)


class ColoredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno, "")
        time = self.formatTime(record, self.datefmt)
        name = record.name.split(".")[-1]
        msg = record.getMessage()

        highlight = next((c for marker, c in HIGHLIGHTS if marker in msg), None)
        if highlight:
            msg = f"{highlight}{msg}{RESET}"
        elif record.levelno == logging.DEBUG:
            msg = f"{DIM}{msg}{RESET}"
        elif record.levelno >= logging.WARNING:
            msg = f"{color}{msg}{RESET}"

        line = f"{DIM}{time}{RESET} {color}{record.levelname:<5}{RESET} {DIM}{name:<18}{RESET} {msg}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
