import abc
import argparse
import asyncio
import dataclasses
from typing import Any, Generic, Self, TypeVar

from rich.console import Console


def cli_arg(
    *names: str,
    required: bool | None = None,
    default=None,
    type: Any = str,
    help: str = "",
    action: str | None = None,
    nargs: str | None = None,
    const: Any = None,
    choices: tuple | None = None,
    **dataclass_kwargs,
) -> Any:
    metadata = {
        "help": help,
        "names": names,
        "required": required,
        "action": action,
    }
    if action not in ("store_true", "store_false", "append_const", "version"):
        metadata["type"] = type
    if nargs is not None:
        metadata["nargs"] = nargs
    if const is not None:
        metadata["const"] = const
    if choices is not None:
        metadata["choices"] = choices

    if isinstance(default, list):
        return dataclasses.field(
            default_factory=lambda: list(default),
            **dataclass_kwargs,
            metadata=metadata,
        )
    return dataclasses.field(default=default, **dataclass_kwargs, metadata=metadata)


class ArgparseModel:
    '''
    expects the `dataclass` decorator to be used
    along with the `cli_arg` function for field
    definitions.
    '''
    @classmethod
    def register(cls, parser: argparse.ArgumentParser) -> None:
        """
        register the arguments with argparse

        Parameters
        ----------
        parser : argparse.ArgumentParser
        """
        for field in dataclasses.fields(cls):  # type: ignore
            names = field.metadata["names"]
            if field.default is not dataclasses.MISSING:
                default = field.default
            elif field.default_factory is not dataclasses.MISSING:
                default = field.default_factory()
            else:
                default = None

            add_kwargs: dict[str, Any] = {
                "default": default,
                "help": field.metadata.get("help", ""),
            }
            is_positional = not names[0].startswith("-")
            if is_positional:
                add_kwargs.pop("default")
            else:
                add_kwargs["dest"] = field.name
            if not is_positional and field.metadata.get("required") is not None:
                add_kwargs["required"] = field.metadata["required"]

            for key in ("type", "nargs", "const", "choices", "action"):
                if field.metadata.get(key) is not None:
                    add_kwargs[key] = field.metadata[key]

            parser.add_argument(*names, **add_kwargs)

    def show(self) -> str:
        """
        Shows the CLI arguments

        Returns
        -------
        str
        """
        output = "CLI Arguments:\n"
        for field in dataclasses.fields(self):  # type: ignore
            value = getattr(self, field.name)
            if value is not None:
                output += f" - [bold]{field.name}[/bold]: {value}\n"
        return output

    @classmethod
    def from_namespace(cls, args: argparse.Namespace) -> Self:
        """
        Create an instance of the model from argparse.Namespace

        Parameters
        ----------
        args : argparse.Namespace

        Returns
        -------
        ArgparseModel
        """
        field_names = {field.name for field in dataclasses.fields(cls)}  # type: ignore
        arg_dict = {k: v for k, v in vars(args).items() if k in field_names}
        return cls(**arg_dict)  # type: ignore


A = TypeVar("A", bound=ArgparseModel)


class CLIGroup(abc.ABC, Generic[A]):
    model: type[A]
    console = Console()
    err_console = Console(stderr=True)

    def __init__(self, parser: argparse.ArgumentParser) -> None:
        self.model.register(parser)

    @abc.abstractmethod
    async def routine(self, args: A) -> int: ...

    def __call__(self, args: argparse.Namespace) -> int:
        parsed_args: A = self.model.from_namespace(args)
        return asyncio.run(self.routine(parsed_args))
