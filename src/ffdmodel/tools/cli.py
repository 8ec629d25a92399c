r"""Auxiliary functions for implementing argparse based command line interfaces."""

from argparse import ArgumentParser, Namespace
import sys
from typing import Callable, List, Optional


Args = Namespace
ParserCallable = Callable[..., ArgumentParser]
FuncCallable = Callable[[Args], int]
MainCallable = Callable[[Optional[List[str]]], int]


def main_func(
    parser: ParserCallable, func: FuncCallable, init: Optional[FuncCallable] = None
) -> MainCallable:
    r"""Create main function of command line tool.

    Args:
        parser: Function which constructs the argument parser.
        func: Function which executes the tool given the parsed arguments.
        init: Optional function called with the parsed arguments before ``func``.
            When it returns a non-zero exit code, ``func`` is not called.

    Returns:
        Main function which takes an optional list of command line arguments and returns
        the exit code of the tool.

    """

    def main(argv: Optional[List[str]] = None) -> int:
        args = parser().parse_args(argv)
        if init is not None:
            exit_code = init(args)
            if exit_code != 0:
                return exit_code
        return func(args)

    return main


def entry_point(main: MainCallable) -> Callable[[], None]:
    r"""Wrap main function such that it can be used as console script entry point."""

    def console_script() -> None:
        try:
            exit_code = main(None)
        except KeyboardInterrupt:
            sys.stderr.write("Execution interrupted by user\n")
            exit_code = 1
        sys.exit(exit_code)

    return console_script
