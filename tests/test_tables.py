import logging
import threading
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from qrpayload.encoders import AlphanumericEncoder, KanjiEncoder
from qrpayload.exceptions import InvalidInputError, TableUnavailableError
from qrpayload.tables import (
    FileTableProvider,
    ResourceTableProvider,
    TableContext,
    TableId,
    default_context,
    read_charset,
    read_encoding_table,
)

from conftest import StubProvider

ALPHANUMERIC_ORDER = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ $%*+-./:"


# ---------- Text formats ----------

def test_read_encoding_table() -> None:
    table = read_encoding_table(["A 10\n", "B11\r\n", "\n", "  36\n", "$\t37"])
    assert table == {"A": 10, "B": 11, " ": 36, "$": 37}


@pytest.mark.parametrize("lines", [["A\n"], ["A ten\n"], ["A 1\n", "A 2\n"]])
def test_read_encoding_table_malformed(lines) -> None:
    with pytest.raises(TableUnavailableError, match="line"):
        read_encoding_table(lines)


def test_read_charset_drops_only_line_terminators() -> None:
    assert read_charset("ab c\r\nd\n") == frozenset("ab cd")


# ---------- Resource provider ----------

def test_resource_alphanumeric_table() -> None:
    table = ResourceTableProvider().load_mapping(TableId.ALPHANUMERIC)
    assert table == {char: value for value, char in enumerate(ALPHANUMERIC_ORDER)}


def test_resource_alphanumeric_charset_is_table_keys() -> None:
    charset = ResourceTableProvider().load_charset(TableId.ALPHANUMERIC)
    assert charset == frozenset(ALPHANUMERIC_ORDER)


def test_resource_latin1_charset() -> None:
    charset = ResourceTableProvider().load_charset(TableId.LATIN1)
    assert charset == frozenset(chr(i) for i in range(256))


def test_resource_jis_x_0208_charset() -> None:
    charset = ResourceTableProvider().load_charset(TableId.JIS_X_0208)

    assert {"\u3000", "漢", "字", "茗", "荷", "Ａ", "ア", "あ"} <= charset
    assert not {"A", "ｱ", "€", "é"} & charset
    assert len(charset) > 6000
    for char in charset:
        code = int.from_bytes(char.encode("shift_jis"), "big")
        assert 0x8140 <= code <= 0x9FFC or 0xE040 <= code <= 0xEBBF


def test_resource_provider_has_no_other_mappings() -> None:
    with pytest.raises(TableUnavailableError):
        ResourceTableProvider().load_mapping(TableId.LATIN1)


# ---------- File provider ----------

def test_file_provider(tmp_path: Path) -> None:
    table_file = tmp_path / "alnum.txt"
    table_file.write_text("X 0\nY 1\n", encoding="utf-8")
    charset_file = tmp_path / "kanji.txt"
    charset_file.write_text("漢字\n", encoding="utf-8")

    provider = FileTableProvider(
        mapping_paths={TableId.ALPHANUMERIC: table_file},
        charset_paths={TableId.JIS_X_0208: str(charset_file)},
    )
    assert provider.load_mapping(TableId.ALPHANUMERIC) == {"X": 0, "Y": 1}
    assert provider.load_charset(TableId.ALPHANUMERIC) == frozenset("XY")
    assert provider.load_charset(TableId.JIS_X_0208) == frozenset("漢字")


def test_file_provider_custom_table_drives_encoder(tmp_path: Path) -> None:
    table_file = tmp_path / "alnum.txt"
    table_file.write_text("X 0\nY 1\n", encoding="utf-8")
    provider = FileTableProvider(mapping_paths={TableId.ALPHANUMERIC: table_file})

    bits = AlphanumericEncoder(TableContext(provider)).encode("YX")
    assert "".join(map(str, bits.tolist())) == format(1 * 45 + 0, "011b")


@pytest.mark.parametrize("table_id", [TableId.ALPHANUMERIC, TableId.LATIN1])
def test_file_provider_missing(tmp_path: Path, table_id: TableId) -> None:
    provider = FileTableProvider(charset_paths={TableId.LATIN1: tmp_path / "missing.txt"})
    with pytest.raises(TableUnavailableError):
        provider.load_charset(table_id)


# ---------- Context ----------

def test_context_loads_once(mocker: MockerFixture) -> None:
    provider = ResourceTableProvider()
    spy = mocker.spy(provider, "load_mapping")
    context = TableContext(provider)

    first = context.mapping(TableId.ALPHANUMERIC)
    second = context.mapping(TableId.ALPHANUMERIC)

    assert first is second
    spy.assert_called_once_with(TableId.ALPHANUMERIC)


def test_context_tables_are_read_only(context: TableContext) -> None:
    table = context.mapping(TableId.ALPHANUMERIC)
    with pytest.raises(TypeError):
        table["a"] = 99
    assert isinstance(context.charset(TableId.LATIN1), frozenset)


def test_context_concurrent_first_access(mocker: MockerFixture) -> None:
    provider = StubProvider(charsets={TableId.JIS_X_0208: frozenset("漢字")})
    spy = mocker.spy(provider, "load_charset")
    context = TableContext(provider)
    barrier = threading.Barrier(16)
    results = []

    def worker() -> None:
        barrier.wait()
        results.append(KanjiEncoder(context).allowed_chars)

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == 16
    assert all(r is results[0] for r in results)
    spy.assert_called_once_with(TableId.JIS_X_0208)


def test_context_unavailable_table_is_not_cached(stub_provider: StubProvider) -> None:
    context = TableContext(stub_provider)
    with pytest.raises(TableUnavailableError) as excinfo:
        context.charset(TableId.JIS_X_0208)
    assert isinstance(excinfo.value.__cause__, KeyError)
    assert not context.is_loaded(TableId.JIS_X_0208)

    stub_provider.charsets[TableId.JIS_X_0208] = frozenset("漢")
    assert context.charset(TableId.JIS_X_0208) == frozenset("漢")


def test_context_unavailable_table_fails_encoding(stub_provider: StubProvider) -> None:
    encoder = KanjiEncoder(TableContext(stub_provider))
    with pytest.raises(TableUnavailableError):
        encoder.encode("漢")


def test_context_logs_loads(context: TableContext, caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.DEBUG, logger="qrpayload.tables"):
        context.charset(TableId.LATIN1)
    assert "Loaded charset table ISO8859-1 (256 entries)" in caplog.text


def test_context_clear(context: TableContext) -> None:
    context.charset(TableId.LATIN1)
    assert context.is_loaded(TableId.LATIN1)
    context.clear()
    assert not context.is_loaded(TableId.LATIN1)


def test_default_context_is_shared() -> None:
    assert default_context() is default_context()
    assert AlphanumericEncoder().context is default_context()


# ---------- Custom table consistency ----------

@pytest.mark.parametrize("line", ["Y 99\n", "Y 45\n", "X -1\n"])
def test_read_encoding_table_rejects_out_of_range_values(line: str) -> None:
    with pytest.raises(TableUnavailableError, match="line 2"):
        read_encoding_table(["A 0\n", line])


def test_read_encoding_table_custom_max_value() -> None:
    assert read_encoding_table(["A 99\n"], max_value=99) == {"A": 99}


@pytest.mark.parametrize("contents", ["X 0\nY 99\n", "X -1\n"])
def test_out_of_range_table_fails_encoding(tmp_path: Path, contents: str) -> None:
    table_file = tmp_path / "alnum.txt"
    table_file.write_text(contents, encoding="utf-8")
    encoder = AlphanumericEncoder(
        TableContext(FileTableProvider(mapping_paths={TableId.ALPHANUMERIC: table_file}))
    )
    with pytest.raises(TableUnavailableError):
        encoder.encode("X")


def test_alphanumeric_allowed_set_follows_mapping(tmp_path: Path) -> None:
    table_file = tmp_path / "alnum.txt"
    table_file.write_text("X 0\n", encoding="utf-8")
    charset_file = tmp_path / "alnum_chars.txt"
    charset_file.write_text("XY", encoding="utf-8")
    provider = FileTableProvider(
        mapping_paths={TableId.ALPHANUMERIC: table_file},
        charset_paths={TableId.ALPHANUMERIC: charset_file},
    )
    encoder = AlphanumericEncoder(TableContext(provider))

    assert encoder.is_allowed("X")
    assert not encoder.is_allowed("Y")
    with pytest.raises(InvalidInputError) as excinfo:
        encoder.encode("XY")
    assert excinfo.value.invalid_chars == "Y"


def test_alphanumeric_encoder_reads_resource_once(mocker: MockerFixture) -> None:
    provider = ResourceTableProvider()
    mapping_spy = mocker.spy(provider, "load_mapping")
    charset_spy = mocker.spy(provider, "load_charset")
    encoder = AlphanumericEncoder(TableContext(provider))

    encoder.encode("AC-42")
    encoder.encode("HELLO")
    assert encoder.is_allowed("Z")

    mapping_spy.assert_called_once_with(TableId.ALPHANUMERIC)
    charset_spy.assert_not_called()


class _InsertingDict(dict):
    """Dict that gains an entry each time its iterator advances."""

    def __iter__(self):
        for key in super().__iter__():
            self[("charset", object())] = frozenset()
            yield key


def test_is_loaded_tolerates_concurrent_insertion(context: TableContext) -> None:
    context.charset(TableId.LATIN1)
    context._tables = _InsertingDict(context._tables)

    assert context.is_loaded(TableId.LATIN1)
    assert not context.is_loaded(TableId.JIS_X_0208)
