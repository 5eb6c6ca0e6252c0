import argparse
import os
from datetime import timedelta

import uvicorn


def serve():
    uvicorn.run(
        "accountsync.main:app",
        host=os.getenv("ACCOUNTSYNC_BIND", "127.0.0.1"),
        port=int(os.getenv("ACCOUNTSYNC_PORT", "8000")),
        reload=False,
        log_level="info"
    )


def mint_token(subject: str, days: int) -> str:
    """Issues a bearer token for an orchestrator, signed with ACCOUNTSYNC_SECRET_KEY."""
    from accountsync.core.security import create_access_token
    return create_access_token(subject, expires_delta=timedelta(days=days))


def main(argv=None):
    parser = argparse.ArgumentParser(description="accountsync service")
    commands = parser.add_subparsers(dest="command")
    commands.add_parser("serve", help="run the HTTP API (default)")
    token = commands.add_parser("token", help="print a bearer token for the /api routes")
    token.add_argument("subject", help="caller name recorded in the token")
    token.add_argument("--days", type=int, default=1, help="validity in days")
    args = parser.parse_args(argv)

    if args.command == "token":
        print(mint_token(args.subject, args.days))
    else:
        serve()


if __name__ == "__main__":
    main()
