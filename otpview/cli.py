import argparse
import curses
import getpass
import logging
import os
import sys
from dataclasses import replace
from typing import Optional

from otpview import __version__
from otpview.config import DEFAULT_CONFIG_DIR, DEFAULT_LOG_FILE, load_config, save_config
from otpview.errors import VaultError
from otpview.session import Session, ENTER_KEYS, BACKSPACE_KEYS, KEY_ESC, KEY_CTRL_C
from otpview.store import CredentialRecord, CredentialStore
from otpview.tui_utils import init_colors, safe_addstr
from otpview.vault import find_vault_path, is_encrypted, read_vault_json

logger = logging.getLogger(__name__)

PASSWORD_ENV_VAR = "OTPVIEW_PASSWORD"
MAX_PASSWORD_ATTEMPTS = 3


def prompt_line(stdscr, prompt: str, initial: str = "") -> Optional[str]:
    """Read one line of text on the bottom row; None when cancelled."""
    max_rows, max_cols = stdscr.getmaxyx()
    row = max_rows - 1
    chars = list(initial)
    stdscr.timeout(-1)  # Block while the user types
    try:
        curses.curs_set(1)
    except curses.error:
        pass
    try:
        while True:
            stdscr.move(row, 0)
            stdscr.clrtoeol()
            safe_addstr(stdscr, row, 0, prompt + "".join(chars), curses.A_BOLD)
            stdscr.refresh()
            ch = stdscr.getch()
            if ch in ENTER_KEYS:
                return "".join(chars)
            elif ch in (KEY_ESC, KEY_CTRL_C):
                return None
            elif ch in BACKSPACE_KEYS:
                if chars:
                    chars.pop()
            elif 32 <= ch <= 126:
                chars.append(chr(ch))
    finally:
        try:
            curses.curs_set(0)
        except curses.error:
            pass


def make_editor(stdscr, refresh_ms: int):
    def edit(record: CredentialRecord) -> Optional[CredentialRecord]:
        try:
            issuer = prompt_line(stdscr, "Issuer: ", record.issuer)
            if issuer is None:
                return None
            label = prompt_line(stdscr, "Label: ", record.label)
            if label is None:
                return None
        finally:
            stdscr.timeout(refresh_ms)
        return replace(record, issuer=issuer, label=label)
    return edit


def run_tui(stdscr, session: Session, no_color: bool, refresh_ms: int) -> None:
    stdscr.keypad(True)  # Enable special keys like arrow keys
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    colors, _ = init_colors(stdscr, no_color)
    stdscr.timeout(refresh_ms)
    session.editor = make_editor(stdscr, refresh_ms)

    session.tick(force=True)
    while session.running:
        session.render(stdscr, colors)
        key = stdscr.getch()
        if key != curses.ERR:
            session.handle_key(key)
        session.tick()


def resolve_vault_path(args, config: dict) -> Optional[str]:
    if args.vault_path:
        return args.vault_path
    if config.get("last_opened_vault") and os.path.isfile(config["last_opened_vault"]):
        return config["last_opened_vault"]
    # Without -d, a rotated backup is found next to the last opened one
    search_dirs = [args.vault_dir] if args.vault_dir else [config.get("last_vault_dir"), "."]
    search_dirs.append(DEFAULT_CONFIG_DIR)
    for vault_dir in search_dirs:
        if vault_dir:
            vault_path = find_vault_path(vault_dir)
            if vault_path:
                return vault_path
    return None


def open_store(vault_path: str):
    """Load the store, asking for a password when the vault is encrypted."""
    if not is_encrypted(read_vault_json(vault_path)):
        return CredentialStore.load(vault_path), None

    password = os.getenv(PASSWORD_ENV_VAR)
    attempts = 0
    while True:
        if not password:
            password = getpass.getpass("Enter vault password: ")
        try:
            return CredentialStore.load(vault_path, password), password
        except VaultError as e:
            attempts += 1
            logger.warning(f"Decryption attempt {attempts} failed: {e}")
            if attempts >= MAX_PASSWORD_ATTEMPTS:
                raise
            print(f"Error: {e}. Try again ({attempts}/{MAX_PASSWORD_ATTEMPTS})", file=sys.stderr)
            password = None


def setup_logging(log_file: str, verbose: bool) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
    logging.basicConfig(
        filename=log_file,
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Terminal one-time-password viewer.", prog="otpview")
    parser.add_argument("vault_path", nargs="?", help="Path to the vault file. If not provided, attempts to find the latest in default locations.", default=None)
    parser.add_argument("-d", "--vault-dir", help="Directory to search for vault files. Defaults to the last vault's directory, then the current one.", default=None)
    parser.add_argument("--no-color", action="store_true", help="Disable colored output.")
    parser.add_argument("--refresh-ms", type=int, default=None, help="Milliseconds between screen refreshes.")
    parser.add_argument("--log-file", default=str(DEFAULT_LOG_FILE), help="Where to write the log.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug messages.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file, args.verbose)

    config = load_config()
    # default_color_mode=false in the config acts like --no-color
    no_color = args.no_color or not config["default_color_mode"]
    refresh_ms = args.refresh_ms or config["refresh_interval_ms"]

    vault_path = resolve_vault_path(args, config)
    if not vault_path:
        print("Error: No vault file found.", file=sys.stderr)
        return 1

    try:
        store, password = open_store(vault_path)
    except VaultError as e:
        print(f"Error opening vault: {e}", file=sys.stderr)
        return 1
    except (KeyboardInterrupt, EOFError):
        print("\nExiting.")
        return 0

    config["last_opened_vault"] = os.path.abspath(vault_path)
    config["last_vault_dir"] = os.path.dirname(os.path.abspath(vault_path))
    save_config(config)

    session = Session(store)
    try:
        curses.wrapper(run_tui, session, no_color, refresh_ms)
    except KeyboardInterrupt:
        logger.info("Interrupted")

    if session.dirty:
        try:
            store.save(vault_path, password)
        except VaultError as e:
            print(f"Error saving vault: {e}", file=sys.stderr)
            return 1
    return 0
