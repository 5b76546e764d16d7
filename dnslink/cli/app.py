import argparse
import asyncio
import contextlib
import sys
from dataclasses import dataclass
from typing import TextIO

from rich.markup import escape

from dnslink import __version__
from dnslink.cli.internals import ArgparseModel, CLIGroup, cli_arg
from dnslink.cli.render import OUTPUTS
from dnslink.core._logging import configure_lib_logger
from dnslink.core.cancel import Cancellation
from dnslink.errors import DnsLinkError
from dnslink.resolver import DnsLinkResolver, ResolutionResult, ResolveOptions
from dnslink.resolver.lookup import DohTxtLookup, create_lookup

EPILOG = """\
examples:
  # Receive the dnslink entries for the dnslink.io domain.
  dnslink dnslink.io

  # Receive only the ipfs entry as text for dnslink.io
  dnslink -k ipfs dnslink.io

  # Receive all dnslink entries for multiple domains as csv
  dnslink -f csv dnslink.io ipfs.io

  # Receive both the result and the log, writing them to files
  dnslink -f csv -d dnslink.io >dnslink-io.csv 2>dnslink-io_log.csv

If both --dns and --doh are given, one of the two modes is chosen at
random and its servers are used at random.
"""


@dataclass
class ResolveArgs(ArgparseModel):
    domains: list[str] = cli_arg(
        "domains",
        nargs="+",
        default=[],
        help="Hostnames to resolve",
    )
    format: str = cli_arg(
        "--format", "-f",
        default="text",
        choices=tuple(OUTPUTS),
        help="Output format",
    )
    key: str | None = cli_arg(
        "--key", "-k",
        help="Only render one particular dnslink key",
    )
    debug: bool = cli_arg(
        "--debug", "-d",
        default=False,
        action="store_true",
        help="Render the resolution log to stderr in the chosen format",
    )
    dns: list | None = cli_arg(
        "--dns",
        action="append",
        nargs="?",
        const=True,
        help="Use a dns server (system servers when no value), e.g. 1.1.1.1:53",
    )
    doh: list | None = cli_arg(
        "--doh",
        action="append",
        nargs="?",
        const=True,
        help="Use a dns-over-https server (cloudflare, google, quad9 or a url)",
    )
    no_recursive: bool = cli_arg(
        "--no-recursive",
        default=False,
        action="store_true",
        help="Do not follow dnslink=/dns/<domain> redirects",
    )
    timeout: float | None = cli_arg(
        "--timeout",
        type=float,
        help="Give up after this many seconds",
    )
    verbose: bool = cli_arg(
        "--verbose",
        default=False,
        action="store_true",
        help="Write debug logs of the resolver to stderr",
    )


def _servers(values: list | None) -> bool | list[str] | None:
    '''
    `[True]` for a bare flag, server names otherwise.
    '''
    if not values:
        return None
    servers = [value for value in values if value is not True]
    return servers or True


class ResolveGroup(CLIGroup[ResolveArgs]):
    model = ResolveArgs

    def __init__(
        self,
        parser: argparse.ArgumentParser,
        *,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        super().__init__(parser)
        self.out = out
        self.err = err

    async def resolve_all(
        self,
        resolver: DnsLinkResolver,
        domains: list[str],
        cancellation: Cancellation,
    ) -> list[ResolutionResult]:
        return await asyncio.gather(*(
            resolver.resolve(domain, cancellation=cancellation)
            for domain in domains
        ))

    async def routine(self, args: ResolveArgs) -> int:
        if args.verbose:
            configure_lib_logger(level_name="DEBUG")
            self.err_console.print(args.show())

        lookup = create_lookup(
            dns_servers=_servers(args.dns),
            doh_endpoints=_servers(args.doh),
        )
        resolver = DnsLinkResolver.create(
            lookup_txt=lookup,
            options=ResolveOptions(recursive=not args.no_recursive),
        )
        output = OUTPUTS[args.format](
            out=self.out or sys.stdout,
            err=self.err or sys.stderr,
            domains=args.domains,
            key=args.key,
            debug=args.debug,
        )

        cancellation = Cancellation(timeout=args.timeout)
        try:
            async with contextlib.AsyncExitStack() as stack:
                if isinstance(lookup, DohTxtLookup):
                    await stack.enter_async_context(lookup)
                results = await self.resolve_all(resolver, args.domains, cancellation)
        except DnsLinkError as exc:
            self.err_console.print(f"[red]Error:[/red] {escape(str(exc))}", highlight=False)
            return 1

        output.start()
        for domain, result in zip(args.domains, results):
            output.write(domain, result)
        output.end()
        return 0


def create_app(
    *,
    out: TextIO | None = None,
    err: TextIO | None = None,
) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dnslink",
        description="Resolve dnslink entries in TXT records",
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    group = ResolveGroup(parser, out=out, err=err)
    parser.set_defaults(func=group)
    return parser


def run(argv: list[str] | None = None) -> int:
    parser = create_app()
    if not (sys.argv[1:] if argv is None else argv):
        parser.print_help()
        return 1

    args = parser.parse_args(argv)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        return 130


def main() -> None:
    sys.exit(run())
