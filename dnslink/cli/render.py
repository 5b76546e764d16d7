from __future__ import annotations

import abc
import csv
import dataclasses as dc
import urllib.parse
from typing import Any, Final, TextIO

import msgspec

from dnslink.resolver.models import (
    AnyLogEntry,
    DomainLogEntry,
    EntryLogEntry,
    InvalidEntry,
    InvalidRedirect,
    LinkSet,
    ResolutionResult,
)


def describe_entry(entry: AnyLogEntry) -> dict[str, str]:
    '''
    Flattens a log entry into the fields shown by the text and csv
    outputs.
    '''
    match entry:
        case InvalidEntry(entry=text, reason=reason):
            return {'entry': text, 'reason': reason}
        case EntryLogEntry(entry=text):
            return {'entry': text}
        case InvalidRedirect(domain=domain, reason=reason):
            fields = {'domain': domain}
            if reason:
                fields['reason'] = reason
            return fields
        case DomainLogEntry(domain=domain, pathname=pathname, search=search):
            fields = {'domain': domain}
            if pathname:
                fields['pathname'] = pathname
            if search:
                fields['search'] = urllib.parse.urlencode(search, doseq=True)
            return fields
    raise TypeError(f'Unexpected log entry {entry!r}')


def select_links(links: LinkSet, key: str | None) -> LinkSet:
    if key is None:
        return links
    return {k: v for k, v in links.items() if k == key}


@dc.dataclass
class Output(abc.ABC):
    '''
    Writes resolution results of one CLI run. `out` receives the links,
    `err` the log when `debug` is set.
    '''
    out: TextIO
    err: TextIO
    domains: list[str]
    key: str | None = None
    debug: bool = False

    @property
    def multiple(self) -> bool:
        return len(self.domains) > 1

    def start(self) -> None:
        pass

    @abc.abstractmethod
    def write(self, domain: str, result: ResolutionResult) -> None: ...

    def end(self) -> None:
        pass


@dc.dataclass
class JsonOutput(Output):
    _first_out: bool = dc.field(default=True, init=False)
    _first_err: bool = dc.field(default=True, init=False)

    def start(self) -> None:
        if self.multiple:
            self.out.write('[\n')
        if self.debug:
            self.err.write('[\n')

    def _line(self, domain: str, payload: dict) -> str:
        if self.multiple:
            payload = {'domain': domain, **payload}
        return msgspec.json.encode(payload).decode()

    def write(self, domain: str, result: ResolutionResult) -> None:
        if not self._first_out:
            self.out.write('\n,')
        self._first_out = False
        self.out.write(self._line(domain, {
            'links': select_links(result.links, self.key),
            'path': result.path,
        }))

        if self.debug:
            if not self._first_err:
                self.err.write('\n,')
            self._first_err = False
            self.err.write(self._line(domain, {'log': result.log}))

    def end(self) -> None:
        if self.multiple:
            self.out.write('\n]')
        self.out.write('\n')
        if self.debug:
            self.err.write('\n]\n')


@dc.dataclass
class TextOutput(Output):
    def write(self, domain: str, result: ResolutionResult) -> None:
        prefix = f'{domain}: ' if self.multiple else ''
        for link_key, values in select_links(result.links, self.key).items():
            for link in values:
                if self.key:
                    self.out.write(f'{prefix}{link.value}\n')
                else:
                    self.out.write(f'{prefix}/{link_key}/{link.value}\n')

        if not self.debug:
            return
        for entry in result.log:
            fields = describe_entry(entry)
            reason = fields.pop('reason', None)
            line = ' '.join([f'[{entry.code.value}]', *(f'{k}={v}' for k, v in fields.items())])
            if reason:
                line += f' ({reason})'
            self.err.write(f'{prefix}{line}\n')


@dc.dataclass
class CsvOutput(Output):
    _out_writer: Any = dc.field(init=False)
    _err_writer: Any = dc.field(init=False)

    def __post_init__(self) -> None:
        self._out_writer = csv.writer(
            self.out, quoting=csv.QUOTE_NONNUMERIC, lineterminator='\n'
        )
        self._err_writer = csv.writer(
            self.err, quoting=csv.QUOTE_NONNUMERIC, lineterminator='\n'
        )

    def start(self) -> None:
        self.out.write('domain,key,value\n')
        if self.debug:
            self.err.write('domain,code,entry,reason\n')

    def write(self, domain: str, result: ResolutionResult) -> None:
        for link_key, values in select_links(result.links, self.key).items():
            for link in values:
                self._out_writer.writerow([domain, link_key, link.value])

        if not self.debug:
            return
        for entry in result.log:
            fields = describe_entry(entry)
            self._err_writer.writerow([
                fields.get('domain', domain),
                entry.code.value,
                fields.get('entry', ''),
                fields.get('reason', ''),
            ])


OUTPUTS: Final[dict[str, type[Output]]] = {
    'json': JsonOutput,
    'text': TextOutput,
    'csv': CsvOutput,
}
