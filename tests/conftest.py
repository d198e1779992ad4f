from typing import Mapping

import numpy as np
import pytest

from qrpayload.tables import ResourceTableProvider, TableContext, TableId


@pytest.fixture()
def context() -> TableContext:
    """A fresh table cache backed by the packaged resources."""
    return TableContext(ResourceTableProvider())


@pytest.fixture(scope="session")
def bits_of():
    """Return a helper turning a '0'/'1' string (spaces ignored) into a bit array."""

    def _bits_of(text: str) -> np.ndarray:
        return np.array([int(c) for c in text.replace(" ", "")], dtype=np.uint8)

    return _bits_of


class StubProvider:
    """Provider serving fixed tables, for tests that control table contents."""

    def __init__(
        self,
        mappings: Mapping[TableId, Mapping[str, int]] = None,
        charsets: Mapping[TableId, frozenset] = None,
    ) -> None:
        self.mappings = dict(mappings or {})
        self.charsets = dict(charsets or {})

    def load_mapping(self, table_id: TableId) -> Mapping[str, int]:
        return self.mappings[table_id]

    def load_charset(self, table_id: TableId) -> frozenset:
        return self.charsets[table_id]


@pytest.fixture()
def stub_provider() -> StubProvider:
    return StubProvider()
