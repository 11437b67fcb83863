import argparse
import asyncio
import json
import sys
from pathlib import Path

from labels_core import api
from labels_core.config.load import load_sync_json
from labels_core.config.sync_spec import SyncSpec
from labels_core.domain.errors import ConfigError, LabelsDbError
from labels_core.domain.results import MERGE_OVERWRITE, MERGE_SKIP


def _print_result(step: str, data: dict) -> None:
    """
    输出JSON格式结果
    """
    result = {"step": step, "status": "ok"}
    result.update(data)
    print(json.dumps(result))
    sys.stdout.flush()


def _print_progress(progress) -> None:
    cart = f" {progress.current_cart_id}" if progress.current_cart_id else ""
    print(f"[{progress.phase}] {progress.current}/{progress.total}{cart}", file=sys.stderr)


def _resolve_pair(args, spec: SyncSpec):
    """
    命令行路径优先，其次sync.json中的paths
    """
    first = args.local or spec.paths.local
    second = args.remote or spec.paths.remote
    if not first or not second:
        raise ConfigError("both database paths are required (arguments or paths.local/paths.remote in sync.json)")
    return first, second


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='labels.db compare and sync tool')
    parser.add_argument('--config', help='sync.json file path')
    parser.add_argument('--verbose', action='store_true', help='print progress to stderr')
    subparsers = parser.add_subparsers(dest='command', required=True)

    # compare-quick 命令
    quick_parser = subparsers.add_parser('compare-quick', help='Compare file sizes and ID tables')
    quick_parser.add_argument('local', nargs='?', help='local labels.db')
    quick_parser.add_argument('remote', nargs='?', help='other labels.db')

    # compare 命令
    detailed_parser = subparsers.add_parser('compare', help='List added, removed and modified entries')
    detailed_parser.add_argument('local', nargs='?', help='local labels.db')
    detailed_parser.add_argument('remote', nargs='?', help='other labels.db')
    detailed_parser.add_argument('--full-hash', action='store_true', default=None, help='hash whole image payloads')
    detailed_parser.add_argument('--batch-size', type=int, help='entries compared concurrently')

    # sync 命令
    sync_parser = subparsers.add_parser('sync', help='Make the second database match the first')
    sync_parser.add_argument('local', nargs='?', help='source labels.db')
    sync_parser.add_argument('remote', nargs='?', help='destination labels.db')
    sync_parser.add_argument('--partial-only', action='store_true', help='fail instead of copying the whole file')

    # inject-diff 命令
    inject_parser = subparsers.add_parser('inject-diff', help='Copy a database and modify some images')
    inject_parser.add_argument('source', help='source labels.db')
    inject_parser.add_argument('dest', help='output labels.db')
    inject_parser.add_argument('-n', '--count', type=int, default=10, help='number of entries to modify')

    # inspect 命令
    inspect_parser = subparsers.add_parser('inspect', help='Inspect labels.db header and ID table')
    inspect_parser.add_argument('path', help='labels.db file path')
    inspect_parser.add_argument('--limit', type=int, default=16, help='number of cart IDs to list')

    # extract 命令
    extract_parser = subparsers.add_parser('extract', help='Extract one label as PNG')
    extract_parser.add_argument('path', help='labels.db file path')
    extract_parser.add_argument('cart_id', help='cart ID (8 hex digits)')
    extract_parser.add_argument('-o', '--output', dest='out_path', required=True, help='output PNG path')

    # list 命令
    list_parser = subparsers.add_parser('list', help='List cart IDs and their slots')
    list_parser.add_argument('path', help='labels.db file path')

    # add / update 命令
    for name, help_text in (('add', 'Add a label from an image'), ('update', 'Replace a label with an image')):
        edit_parser = subparsers.add_parser(name, help=help_text)
        edit_parser.add_argument('path', help='labels.db file path')
        edit_parser.add_argument('cart_id', help='cart ID (8 hex digits)')
        edit_parser.add_argument('image', help='image file')
        edit_parser.add_argument('--fit', choices=['cover', 'contain'], default='cover', help='resize mode')

    # delete 命令
    delete_parser = subparsers.add_parser('delete', help='Delete a label')
    delete_parser.add_argument('path', help='labels.db file path')
    delete_parser.add_argument('cart_id', help='cart ID (8 hex digits)')

    # merge 命令
    merge_parser = subparsers.add_parser('merge', help='Merge an imported labels.db into a local one')
    merge_parser.add_argument('local', help='local labels.db')
    merge_parser.add_argument('incoming', help='imported labels.db')
    merge_parser.add_argument('--skip-existing', action='store_true', help='keep local images for existing cart IDs')

    # build 命令
    build_cmd = subparsers.add_parser('build', help='Build labels.db from <cart_id>.png images')
    build_cmd.add_argument('image_dir', help='directory of images named by cart ID')
    build_cmd.add_argument('-o', '--output', dest='out_path', required=True, help='output labels.db path')

    return parser


async def _run(args) -> int:
    spec = load_sync_json(args.config) if args.config else SyncSpec()
    on_progress = _print_progress if args.verbose else None

    if args.command == 'compare-quick':
        local, remote = _resolve_pair(args, spec)
        result = await api.compare_quick(local, remote, on_progress=on_progress)
        _print_result('compare-quick', result.to_dict())

    elif args.command == 'compare':
        local, remote = _resolve_pair(args, spec)
        full_hash = spec.compare.full_hash if args.full_hash is None else args.full_hash
        batch_size = args.batch_size or spec.compare.batch_size
        result = await api.compare_detailed(local, remote, full_hash=full_hash, batch_size=batch_size,
                                            on_progress=on_progress)
        _print_result('compare', result.to_dict())

    elif args.command == 'sync':
        local, remote = _resolve_pair(args, spec)
        if args.partial_only:
            result = await api.sync_changed_entries(local, remote, on_progress=on_progress,
                                                    batch_size=spec.compare.batch_size)
        else:
            result = await api.sync_labels_db(local, remote, on_progress=on_progress,
                                              full_hash=spec.sync.verify_full_hash,
                                              batch_size=spec.compare.batch_size)
        _print_result('sync', result.to_dict())

    elif args.command == 'inject-diff':
        modified = await api.create_modified_labels_db(args.source, args.dest, args.count)
        _print_result('inject-diff', {'modified': modified})

    elif args.command == 'inspect':
        info = api.inspect_labels_db(args.path, limit=args.limit)
        header = info['header']
        print("labels.db Inspection:")
        print("-" * 60)
        print(f"Header valid: {header['valid']}" + (f" ({header['error']})" if header['error'] else ""))
        print(f"Version: {header['version']}")
        print(f"File Size: {info['file_size']}")
        print(f"Physical Entries: {info['physical_entry_count']}")
        print(f"Active Entries: {info['active_entry_count']}")
        print("-" * 60)
        for cart_id in info['cart_ids']:
            print(cart_id)

    elif args.command == 'extract':
        png = await api.extract_label_png(args.path, args.cart_id)
        if png is None:
            print(f"cart {args.cart_id} not found in {args.path}", file=sys.stderr)
            return 1
        Path(args.out_path).write_bytes(png)
        _print_result('extract', {'cart_id': args.cart_id, 'size': len(png)})

    elif args.command == 'list':
        for cart_id, index in await api.list_entries(args.path):
            print(f"{index:5d} {cart_id}")

    elif args.command == 'add':
        index = api.add_cartridge(args.path, args.cart_id, args.image, mode=args.fit)
        _print_result('add', {'cart_id': args.cart_id, 'slot': index})

    elif args.command == 'update':
        index = api.update_label_image(args.path, args.cart_id, args.image, mode=args.fit)
        _print_result('update', {'cart_id': args.cart_id, 'slot': index})

    elif args.command == 'delete':
        remaining = api.delete_entry(args.path, args.cart_id)
        _print_result('delete', {'cart_id': args.cart_id, 'entries': remaining})

    elif args.command == 'merge':
        mode = MERGE_SKIP if args.skip_existing else MERGE_OVERWRITE
        result = api.merge_labels_db(args.local, args.incoming, mode=mode)
        _print_result('merge', result.to_dict())

    elif args.command == 'build':
        images = {
            p.stem: p for p in sorted(Path(args.image_dir).iterdir())
            if p.is_file() and p.suffix.lower() in ('.png', '.jpg', '.jpeg', '.bmp', '.webp')
        }
        count = api.build_labels_db_from_images(images, args.out_path)
        _print_result('build', {'entries': count, 'output': args.out_path})

    return 0


def main(argv=None) -> int:
    """
    命令行入口
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return asyncio.run(_run(args))
    except (LabelsDbError, OSError, ValueError) as e:
        print(f"{args.command} failed: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
