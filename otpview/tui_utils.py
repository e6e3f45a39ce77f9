import curses
import textwrap
from typing import Dict, List, Tuple

BOX_TOP_LEFT, BOX_TOP_RIGHT = "┌", "┐"
BOX_BOTTOM_LEFT, BOX_BOTTOM_RIGHT = "└", "┘"
BOX_HORIZONTAL, BOX_VERTICAL = "─", "│"


def plain_colors() -> Dict[str, int]:
    """Attributes used when colors are disabled or unsupported."""
    return {
        "NORMAL_TEXT_COLOR": curses.A_NORMAL,
        "HIGHLIGHT_COLOR": curses.A_REVERSE | curses.A_BOLD,
        "FOCUS_BORDER_COLOR": curses.A_BOLD,
        "ALERT_COLOR": curses.A_BOLD,
        "HEADER_COLOR": curses.A_REVERSE | curses.A_BOLD,
    }


def init_colors(stdscr, no_color: bool = False) -> Tuple[Dict[str, int], bool]:
    colors = plain_colors()
    if no_color or not curses.has_colors():
        return colors, False

    curses.start_color()
    curses.use_default_colors()  # Use default terminal background

    # Pair 1: Default text
    curses.init_pair(1, curses.COLOR_WHITE, -1)
    # Pair 2: Selected row and gauge fill (black on white)
    curses.init_pair(2, curses.COLOR_BLACK, curses.COLOR_WHITE)
    # Pair 3: Search bar border while it has focus
    curses.init_pair(3, curses.COLOR_RED, -1)
    # Pair 4: Alert panel
    curses.init_pair(4, curses.COLOR_YELLOW, -1)

    colors["NORMAL_TEXT_COLOR"] = curses.color_pair(1)
    colors["HIGHLIGHT_COLOR"] = curses.color_pair(2) | curses.A_BOLD
    colors["FOCUS_BORDER_COLOR"] = curses.color_pair(3) | curses.A_BOLD
    colors["ALERT_COLOR"] = curses.color_pair(4) | curses.A_BOLD
    colors["HEADER_COLOR"] = curses.color_pair(2) | curses.A_BOLD
    return colors, True


def safe_addstr(win, row: int, col: int, text: str, attr: int = 0) -> None:
    """addstr that clips to the window and tolerates the bottom-right cell."""
    max_rows, max_cols = win.getmaxyx()
    if row < 0 or col < 0 or row >= max_rows or col >= max_cols:
        return
    text = text[:max_cols - col]
    if not text:
        return
    try:
        win.addstr(row, col, text, attr)
    except curses.error:
        # Writing the last cell of the window moves the cursor out of bounds
        pass


def draw_box(win, top: int, left: int, height: int, width: int, title: str = "", attr: int = 0) -> None:
    if height < 2 or width < 2:
        return
    horizontal = BOX_HORIZONTAL * (width - 2)
    safe_addstr(win, top, left, BOX_TOP_LEFT + horizontal + BOX_TOP_RIGHT, attr)
    for r in range(top + 1, top + height - 1):
        safe_addstr(win, r, left, BOX_VERTICAL, attr)
        safe_addstr(win, r, left + width - 1, BOX_VERTICAL, attr)
    safe_addstr(win, top + height - 1, left, BOX_BOTTOM_LEFT + horizontal + BOX_BOTTOM_RIGHT, attr)
    if title:
        safe_addstr(win, top, left + 1, title[:max(0, width - 2)], attr)


def clear_region(win, top: int, left: int, height: int, width: int) -> None:
    for r in range(top, top + height):
        safe_addstr(win, r, left, " " * width)


def centered_rect(percent_x: int, percent_y: int, max_rows: int, max_cols: int) -> Tuple[int, int, int, int]:
    """(top, left, height, width) of a rectangle centered in the viewport."""
    height = max(3, max_rows * percent_y // 100)
    width = max(4, max_cols * percent_x // 100)
    height = min(height, max_rows)
    width = min(width, max_cols)
    return (max_rows - height) // 2, (max_cols - width) // 2, height, width


def wrap_lines(text: str, width: int) -> List[str]:
    lines = []
    for paragraph in text.splitlines():
        lines.extend(textwrap.wrap(paragraph.strip(), max(1, width)) or [""])
    return lines
