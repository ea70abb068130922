"""Shared test doubles."""

from dataclasses import replace
from typing import List, Set

import pytest

from dockdns.errors import ProviderError
from dockdns.records import Provider, Record, RecordType


class MockProvider(Provider):
    """In-memory DNS provider with call tracking.

    ``failing_lists`` holds the 1-based numbers of list() calls that fail,
    ``failing_names`` the record names whose upsert/delete fails.
    """

    def __init__(
        self,
        records: List[Record] | None = None,
        failing_lists: Set[int] | None = None,
        failing_names: Set[str] | None = None,
    ):
        self._records: List[Record] = list(records or [])
        self._failing_lists = failing_lists or set()
        self._failing_names = failing_names or set()
        self._next_id = 1
        self.list_calls = 0
        self.calls: List[tuple[str, Record]] = []

    @property
    def name(self) -> str:
        return "MockDNS"

    @property
    def records(self) -> List[Record]:
        return list(self._records)

    @property
    def upserts(self) -> List[Record]:
        return [r for op, r in self.calls if op == "upsert"]

    @property
    def deletes(self) -> List[Record]:
        return [r for op, r in self.calls if op == "delete"]

    def values(self) -> set[tuple[str, RecordType, str]]:
        return {(r.name, r.type, r.value) for r in self._records}

    def list(self) -> List[Record]:
        self.list_calls += 1
        if self.list_calls in self._failing_lists:
            raise ProviderError("list failed")
        return list(self._records)

    def upsert(self, record: Record) -> None:
        self.calls.append(("upsert", record))
        if record.name in self._failing_names:
            raise ProviderError(f"upsert of {record.name} failed")
        stored = record if record.id else replace(record, id=f"id-{self._next_id}")
        self._next_id += 1
        for index, existing in enumerate(self._records):
            if existing.key == record.key:
                self._records[index] = stored
                return
        self._records.append(stored)

    def delete(self, record: Record) -> None:
        self.calls.append(("delete", record))
        if record.name in self._failing_names:
            raise ProviderError(f"delete of {record.name} failed")
        self._records = [
            r for r in self._records if not (r.key == record.key and r.value == record.value)
        ]


@pytest.fixture
def mock_provider():
    return MockProvider
