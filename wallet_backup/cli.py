import argparse
import logging
import sys
import threading
from concurrent.futures import ThreadPoolExecutor

from . import AUTH_MANAGERS
from .config import CONFIG_FILE, AppConfig, setup_logging
from .core.backend_client import BackendStorageClient
from .errors import StorageProviderError, TransferCancelledError, UnauthenticatedError
from .models.file_entry import FileEntry

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='wallet-backup')
    p.add_argument('--config', default=CONFIG_FILE)
    sub = p.add_subparsers(dest='cmd', required=True)

    for name in ('signin', 'signout', 'status'):
        cmd = sub.add_parser(name)
        cmd.add_argument('provider', choices=sorted(AUTH_MANAGERS))

    ls = sub.add_parser('ls')
    ls.add_argument('provider', choices=sorted(AUTH_MANAGERS))
    ls.add_argument('--folder', help='encoded folder entry; defaults to the app folder')

    mkdir = sub.add_parser('mkdir')
    mkdir.add_argument('provider', choices=sorted(AUTH_MANAGERS))
    mkdir.add_argument('name')
    mkdir.add_argument('--folder', help='encoded parent folder entry')

    push = sub.add_parser('push')
    push.add_argument('provider', choices=sorted(AUTH_MANAGERS))
    push.add_argument('file')
    push.add_argument('--folder', help='encoded folder entry')

    pull = sub.add_parser('pull')
    pull.add_argument('provider', choices=sorted(AUTH_MANAGERS))
    pull.add_argument('entry', help='encoded file entry, as printed by ls')
    pull.add_argument('dest_dir')

    return p


def print_progress(done: int, total: int):
    percent = 100 * done // total if total else 100
    sys.stderr.write(f"\r{done}/{total} bytes ({percent}%)")
    if done >= total:
        sys.stderr.write("\n")
    sys.stderr.flush()


def run_transfer(func, *args):
    """Runs an upload/download on a worker thread so Ctrl-C can cancel it cleanly."""
    cancel_event = threading.Event()
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(func, *args, print_progress, cancel_event)
        try:
            return future.result()
        except KeyboardInterrupt:
            cancel_event.set()
            return future.result()


def _optional_entry(encoded):
    return FileEntry.decode(encoded) if encoded else None


def _sign_in(manager) -> int:
    flow = manager.begin_sign_in()
    print(f"Open this URL and authorize access:\n\n  {flow.authorization_url}\n")
    code = input("Paste the authorization code or the redirected URL: ")
    result = manager.complete_sign_in(flow, code)
    if not result.success:
        print(f"Sign-in failed: {result.reason}")
        return 1
    print(f"Signed in as {result.session.account}")
    return 0


def run(args, config: AppConfig) -> int:
    manager = AUTH_MANAGERS[args.provider](config)

    if args.cmd == 'signin':
        return _sign_in(manager)
    if args.cmd == 'signout':
        acknowledged = manager.sign_out().result()
        print("Signed out" if acknowledged else "Signed out locally; the provider did not confirm revocation")
        return 0
    if args.cmd == 'status':
        session = manager.current_session()
        if session is None:
            print(f"{args.provider}: not signed in")
        else:
            state = "authorized" if manager.is_authorized() else "missing scopes"
            print(f"{args.provider}: {session.account} ({state})")
        return 0

    client = BackendStorageClient(manager.current_session(), config)
    if args.cmd == 'ls':
        for entry in client.list(_optional_entry(args.folder)):
            kind = 'd' if entry.is_directory else '-'
            print(f"{kind} {entry.size:>12} {entry.name}\t{entry.encode()}")
    elif args.cmd == 'mkdir':
        print(client.create_folder(_optional_entry(args.folder), args.name).encode())
    elif args.cmd == 'push':
        entry = run_transfer(client.upload, _optional_entry(args.folder), args.file)
        print(entry.encode())
    elif args.cmd == 'pull':
        path = run_transfer(client.download, FileEntry.decode(args.entry), args.dest_dir)
        print(path)
    return 0


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = AppConfig.load(args.config)
    setup_logging(config)
    try:
        return run(args, config)
    except TransferCancelledError:
        print("\nTransfer cancelled")
        return 130
    except UnauthenticatedError as e:
        print(f"{e}. Run 'wallet-backup signin {args.provider}' first.")
        return 1
    except StorageProviderError as e:
        hint = " (temporary, try again)" if e.recoverable else ""
        print(f"Error: {e}{hint}")
        return 2 if e.recoverable else 1


if __name__ == '__main__':
    sys.exit(main())
