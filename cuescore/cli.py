import argparse
import logging
import sys
from itertools import islice

from .config import get_log_level
from .i18n import translate
from .models import DEFAULT_VIEW, SORT_POINTS
from .rankings import SORT_MODES
from .services.exceptions import ServiceError
from .services import groups as group_service
from .services import users as user_service

logger = logging.getLogger(__name__)


def print_rankings(rankings) -> None:
    if not rankings:
        print('No players')
        return
    for pos, r in enumerate(rankings, start=1):
        print(
            f"{pos:>2}. {r.user_name:<20} {r.points:>4} pts  "
            f"{r.matches_won}/{r.matches_played} won  {r.win_percentage}%"
        )


def main(argv=None):
    parser = argparse.ArgumentParser(description='Cue Score CLI')
    parser.add_argument('--lang', default=None, help='language for error messages')
    sub = parser.add_subparsers(dest='cmd')

    reg = sub.add_parser('register_user')
    reg.add_argument('name')
    reg.add_argument('--email')

    cgroup = sub.add_parser('create_group')
    cgroup.add_argument('owner_id')
    cgroup.add_argument('name')

    rank = sub.add_parser('rankings')
    rank.add_argument('group_id')
    rank.add_argument('--view', default=DEFAULT_VIEW, choices=group_service.RANKING_VIEWS)
    rank.add_argument('--sort', default=SORT_POINTS, choices=SORT_MODES)

    dgroup = sub.add_parser('delete_group')
    dgroup.add_argument('group_id')
    dgroup.add_argument('user_id')

    link = sub.add_parser('link_guest')
    link.add_argument('group_id')
    link.add_argument('actor_id')
    link.add_argument('guest_id')
    link.add_argument('user_id')

    watch = sub.add_parser('watch_rankings')
    watch.add_argument('group_id')
    watch.add_argument('--view', default=DEFAULT_VIEW, choices=group_service.RANKING_VIEWS)
    watch.add_argument('--sort', default=SORT_POINTS, choices=SORT_MODES)
    watch.add_argument('--interval', type=float, default=2.0)
    watch.add_argument('--count', type=int, help='stop after this many snapshots')

    args = parser.parse_args(argv)
    logging.basicConfig(level=get_log_level())

    try:
        if args.cmd == 'register_user':
            user, token, secret = user_service.register_user(args.name, args.email)
            print(f'{user.user_id} {token} {secret}')
        elif args.cmd == 'create_group':
            group = group_service.create_group(args.owner_id, args.name)
            print(group.group_id)
        elif args.cmd == 'rankings':
            print_rankings(group_service.group_rankings(args.group_id, args.view, args.sort))
        elif args.cmd == 'delete_group':
            removed = group_service.delete_group(args.group_id, args.user_id)
            for collection, count in removed.items():
                print(f'{collection}: {count}')
        elif args.cmd == 'link_guest':
            count = group_service.link_guest(args.group_id, args.actor_id, args.guest_id, args.user_id)
            print(f'{count} matches updated')
        elif args.cmd == 'watch_rankings':
            subscription = group_service.watch_group_rankings(
                args.group_id, args.view, args.sort, interval=args.interval
            )
            with subscription:
                try:
                    for snapshot in islice(subscription, args.count):
                        print_rankings(snapshot)
                        print()
                except KeyboardInterrupt:
                    pass
        else:
            parser.print_help()
    except ServiceError as exc:
        print(translate(exc.message, args.lang, **exc.values), file=sys.stderr)
        raise SystemExit(1)


if __name__ == '__main__':
    main()
