"""Render dispatcher: draws the session onto a curses window.

Nothing here mutates the session; drawing the same state twice issues the
same calls in the same order.
"""
from otpview.state import Focus, Page
from otpview.tui_utils import (
    centered_rect,
    clear_region,
    draw_box,
    plain_colors,
    safe_addstr,
    wrap_lines,
)

SEARCH_BAR_TITLE = "Press CTRL + F to search a code..."
NO_SELECTION_TEXT = "No element is selected"
HIGHLIGHT_SYMBOL = "-> "
HELP_TEXT = """Press:
+ -> Increment the HOTP counter
- -> Decrement the HOTP counter
k -> Show QRCode of the selected element
Enter -> Copy the OTP Code to the clipboard
e -> Edit the issuer and label of the selected element
d, Del -> Delete the selected element
CTRL-F, / -> Search codes
CTRL-W -> Clear the search query
i, ? -> Show this help
q, CTRL-D, Esc -> Exit the application"""

# Column shares of the table width: Id, Issuer, Label, OTP
COLUMN_PERCENTAGES = (5, 35, 35, 25)
COLUMN_HEADERS = ("Id", "Issuer", "Label", "OTP")


def render(win, session, colors=None) -> None:
    colors = colors or plain_colors()
    win.erase()
    page = session.state.page
    if page == Page.MAIN:
        draw_main_page(win, session, colors)
    elif page == Page.QRCODE:
        draw_qrcode_page(win, session, colors)
    elif page == Page.INFO:
        draw_info_page(win, session, colors)
    win.refresh()


def _calculate_column_widths(inner_width: int):
    widths = [inner_width * pct // 100 for pct in COLUMN_PERCENTAGES]
    # Hand rounding leftovers to the last column
    widths[-1] += inner_width - sum(widths)
    return widths


def _format_row(cells, widths) -> str:
    return "".join(str(cell)[:max(0, w - 1)].ljust(w) for cell, w in zip(cells, widths))


def draw_main_page(win, session, colors) -> None:
    state = session.state
    max_rows, max_cols = win.getmaxyx()
    margin = 1
    width = max(2, max_cols - 2 * margin)

    # Search bar
    search_top = margin
    border_attr = colors["FOCUS_BORDER_COLOR"] if state.focus == Focus.SEARCH_BAR else colors["NORMAL_TEXT_COLOR"]
    draw_box(win, search_top, margin, 3, width, SEARCH_BAR_TITLE, border_attr)
    query = state.search_query[-max(0, width - 4):] if width > 4 else ""
    safe_addstr(win, search_top + 1, margin + max(1, (width - len(query)) // 2), query, colors["NORMAL_TEXT_COLOR"])

    # Progress line at the bottom
    progress_row = max_rows - 1 - margin
    draw_progress(win, progress_row, margin, width, session, colors)

    # Table fills what is left between the two
    table_top = search_top + 3
    table_height = progress_row - table_top - 1
    draw_table(win, table_top, margin, table_height, width, session, colors)

    if state.focus == Focus.POPUP:
        draw_popup(win, state.popup_text, colors)


def draw_table(win, top: int, left: int, height: int, width: int, session, colors) -> None:
    if height < 3:
        return
    view = session.view
    rule = "─" * width
    safe_addstr(win, top, left, rule, colors["NORMAL_TEXT_COLOR"])
    safe_addstr(win, top, left + 1, session.title[:max(0, width - 2)], colors["NORMAL_TEXT_COLOR"])

    prefix_len = len(HIGHLIGHT_SYMBOL)
    widths = _calculate_column_widths(max(0, width - prefix_len))
    header = " " * prefix_len + _format_row(COLUMN_HEADERS, widths)
    safe_addstr(win, top + 1, left, header.ljust(width)[:width], colors["HEADER_COLOR"])

    # Rows are spaced by a blank line; keep the selection on screen
    first_row = top + 3
    last_row = top + height - 1
    visible = max(1, (last_row - first_row + 1) // 2)
    selected = view.selected
    offset = 0
    if selected is not None and selected >= visible:
        offset = selected - visible + 1

    row = first_row
    for position in range(offset, min(len(view.rows), offset + visible)):
        item = view.rows[position]
        is_selected = position == selected
        prefix = HIGHLIGHT_SYMBOL if is_selected else " " * prefix_len
        line = prefix + _format_row((item.index + 1, item.issuer, item.label, item.code), widths)
        attr = colors["HIGHLIGHT_COLOR"] if is_selected else colors["NORMAL_TEXT_COLOR"]
        safe_addstr(win, row, left, line[:width], attr)
        row += 2

    safe_addstr(win, top + height, left, rule, colors["NORMAL_TEXT_COLOR"])


def draw_progress(win, row: int, left: int, width: int, session, colors) -> None:
    state = session.state
    progress = session.clock.progress
    label = f"{progress}%" if state.print_percentage else state.label_text
    bar = label.center(width)[:width]
    filled = width * progress // 100
    safe_addstr(win, row, left, bar[:filled], colors["HIGHLIGHT_COLOR"])
    safe_addstr(win, row, left + filled, bar[filled:], colors["NORMAL_TEXT_COLOR"])


def draw_popup(win, text: str, colors) -> None:
    max_rows, max_cols = win.getmaxyx()
    top, left, height, width = centered_rect(60, 20, max_rows, max_cols)
    clear_region(win, top, left, height, width)
    draw_box(win, top, left, height, width, "Alert", colors["ALERT_COLOR"])
    inner_width = max(1, width - 2)
    for i, line in enumerate(wrap_lines(text, inner_width)[:max(0, height - 2)]):
        safe_addstr(win, top + 1 + i, left + 1 + (inner_width - len(line)) // 2, line, colors["NORMAL_TEXT_COLOR"])


def qr_lines(matrix) -> list:
    """Pack two matrix rows per text line with half blocks.

    Light modules are drawn as blocks so the code reads dark-on-light on a
    dark terminal.
    """
    lines = []
    for r in range(0, len(matrix), 2):
        upper = matrix[r]
        lower = matrix[r + 1] if r + 1 < len(matrix) else [False] * len(upper)
        chars = []
        for top_dark, bottom_dark in zip(upper, lower):
            if not top_dark and not bottom_dark:
                chars.append("█")
            elif not top_dark:
                chars.append("▀")
            elif not bottom_dark:
                chars.append("▄")
            else:
                chars.append(" ")
        lines.append("".join(chars))
    return lines


def _selected_record(session):
    index = session.view.selected_index()
    elements = session.store.elements()
    if index is None or not 0 <= index < len(elements):
        return None, None
    return index, elements[index]


def _draw_paragraph_page(win, title: str, lines, colors) -> None:
    max_rows, max_cols = win.getmaxyx()
    draw_box(win, 0, 0, max_rows, max_cols, title, colors["NORMAL_TEXT_COLOR"])
    inner_width = max(1, max_cols - 2)
    for i, line in enumerate(lines[:max(0, max_rows - 2)]):
        col = 1 + max(0, (inner_width - len(line)) // 2)
        safe_addstr(win, 1 + i, col, line[:inner_width], colors["NORMAL_TEXT_COLOR"])


def draw_qrcode_page(win, session, colors) -> None:
    index, record = _selected_record(session)
    if record is None:
        _draw_paragraph_page(win, "Nope", [NO_SELECTION_TEXT], colors)
        return
    title = f"{record.issuer} - {record.label}"
    _draw_paragraph_page(win, title, qr_lines(session.store.visual_code(index)), colors)


def draw_info_page(win, session, colors) -> None:
    max_rows, max_cols = win.getmaxyx()
    _draw_paragraph_page(win, session.title, wrap_lines(HELP_TEXT, max(1, max_cols - 2)), colors)
