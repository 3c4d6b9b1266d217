#!/usr/bin/env python3
"""Command-line interface for building SOCKS tunnels and resolving names."""
import argparse
import logging
import sys
from typing import List, Optional

from colorama import Fore, Style
from colorama import init as colorama_init
from python_socks import ProxyError, ProxyTimeoutError

from sockschain import __version__
from sockschain.proxy import (
    DEFAULT_TIMEOUT,
    ChainBuilder,
    Destination,
    ProxyChain,
    parse_proxy_string,
)

# Initialize colorama for cross-platform colored terminal output
colorama_init()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)
logger = logging.getLogger("sockschain")


def read_proxies_from_file(file_path: str) -> List[str]:
    """Read proxy strings from a text file (one per line, outermost first)"""
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            # Read lines, strip whitespace, and filter out empty lines and comments
            return [
                line.strip()
                for line in f
                if line.strip() and not line.strip().startswith("#")
            ]
    except Exception as e:
        raise ValueError(f"Failed to read proxies from file {file_path}: {e}") from e


def _timeout_arg(value: str) -> Optional[float]:
    """Parse --timeout; 0 disables the timeout"""
    try:
        timeout = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Invalid timeout: {value}") from exc
    if timeout < 0:
        raise argparse.ArgumentTypeError(f"Invalid timeout: {value}")
    return timeout or None


def run_connect(proxy_strings: List[str], host: str, port: int, timeout: Optional[float]) -> None:
    """Build a tunnel through the given proxies, report it and close it"""
    chain = ProxyChain.of([parse_proxy_string(p) for p in proxy_strings])
    print(f"Connecting to {Fore.CYAN}{host}:{port}{Style.RESET_ALL} via:")
    for hop in chain:
        print(f"  - {Fore.CYAN}{hop}{Style.RESET_ALL}")

    transport = ChainBuilder(timeout=timeout).build(chain, Destination(host, port))
    try:
        bound = transport.proxy_sockname
        print(
            f"{Fore.GREEN}Tunnel established "
            f"(proxy bound {bound.bound_address}:{bound.bound_port}){Style.RESET_ALL}"
        )
    finally:
        transport.close()


def run_resolve(proxy_string: str, host: str, timeout: Optional[float]) -> None:
    """Resolve host through a SOCKS5 proxy and print the address"""
    proxy = parse_proxy_string(proxy_string)
    address = ChainBuilder(timeout=timeout).resolve(proxy, host)
    print(f"{host} {Fore.GREEN}{address}{Style.RESET_ALL}")


def main() -> None:
    """Main entry point for the CLI application."""
    parser = argparse.ArgumentParser(
        description="Tunnel through chains of SOCKS4/SOCKS5 proxies"
    )
    parser.add_argument(
        "--debug", "-d", action="store_true", help="Enable debug logging"
    )
    parser.add_argument(
        "--version", "-v", action="store_true", help="Show version information"
    )

    subparsers = parser.add_subparsers(dest="command")

    # Connect command
    connect_parser = subparsers.add_parser(
        "connect", help="Open a tunnel through a proxy chain and report the result"
    )
    connect_parser.add_argument("host", help="Destination host")
    connect_parser.add_argument("port", type=int, help="Destination port")
    connect_parser.add_argument(
        "--timeout",
        "-t",
        type=_timeout_arg,
        default=DEFAULT_TIMEOUT,
        help=f"Seconds to wait on each step, 0 to wait forever (default: {DEFAULT_TIMEOUT:g})",
    )

    # Create a mutually exclusive group for proxy specification
    proxy_group = connect_parser.add_mutually_exclusive_group(required=True)
    proxy_group.add_argument(
        "--proxies",
        "-x",
        nargs="+",
        help="Proxy chain, outermost first, in the form of protocol://[user:pass@]host:port",
    )
    proxy_group.add_argument(
        "--proxy-file",
        "-f",
        help="Path to a text file containing the proxy chain (one per line, outermost first)",
    )

    # Resolve command
    resolve_parser = subparsers.add_parser(
        "resolve", help="Resolve a host name through a SOCKS5 proxy"
    )
    resolve_parser.add_argument("host", help="Host name or IPv4 address to resolve")
    resolve_parser.add_argument(
        "--proxy",
        "-x",
        required=True,
        help="SOCKS5 proxy in the form of socks5://[user:pass@]host:port",
    )
    resolve_parser.add_argument(
        "--timeout",
        "-t",
        type=_timeout_arg,
        default=DEFAULT_TIMEOUT,
        help=f"Seconds to wait on each step, 0 to wait forever (default: {DEFAULT_TIMEOUT:g})",
    )

    args = parser.parse_args()

    if args.version:
        print(f"sockschain version {__version__}")
        return

    if not args.command:
        parser.print_help()
        return

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        if args.command == "connect":
            # Get proxy strings, either from command line or from file
            if args.proxies:
                proxy_strings = args.proxies
            else:  # args.proxy_file is set due to mutually exclusive group
                proxy_strings = read_proxies_from_file(args.proxy_file)

                if not proxy_strings:
                    print(
                        f"{Fore.RED}Error: No valid proxy strings found in file {args.proxy_file}{Style.RESET_ALL}"
                    )
                    sys.exit(1)

            run_connect(proxy_strings, args.host, args.port, args.timeout)
        elif args.command == "resolve":
            run_resolve(args.proxy, args.host, args.timeout)
        else:
            parser.print_help()
    except ProxyTimeoutError as e:
        print(f"{Fore.RED}Timed out: {e}{Style.RESET_ALL}")
        sys.exit(1)
    except (ValueError, ProxyError, OSError) as e:
        print(f"{Fore.RED}Error: {e}{Style.RESET_ALL}")
        sys.exit(1)
    except KeyboardInterrupt:
        print(f"{Fore.YELLOW}Interrupted by user{Style.RESET_ALL}")


if __name__ == "__main__":
    main()
