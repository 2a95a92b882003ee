import asyncio
import base64

import pytest

from conftest import FakeAdapter, make_png
from priordeed.adapters.base import AdapterContext
from priordeed.exceptions import AdapterContractError, IdentityResolutionError
from priordeed.materializer import page_count
from priordeed.models import (
    BookPage,
    DeedAsset,
    DocumentId,
    FailureStage,
    InstrumentNumber,
    PropertyIdentity,
    PropertyQuery,
)
from priordeed.orchestrator import DeedOrchestrator, build_filename

QUERY = PropertyQuery(raw_address="123 Main St, Springfield, XX")


def _run(adapter, **kwargs):
    return asyncio.run(DeedOrchestrator(**kwargs).run(QUERY, adapter))


def _asset(pages: int = 1) -> DeedAsset:
    return DeedAsset(source_url="https://recorder.test/doc", buffers=tuple(make_png() for _ in range(pages)))


def test_first_reference_that_resolves_wins():
    adapter = FakeAdapter(
        references=[InstrumentNumber(number="2020-111"), BookPage(book="100", page="5")],
        documents={"2020_111": None, "B100_P5": _asset(2)},
    )

    result = _run(adapter)

    assert result.success
    assert result.failure_stage is None
    assert page_count(result.pdf_bytes) == 2
    assert result.filename == "springfield_xx_deed_B100_P5.pdf"
    assert adapter.calls == ["identity", "references", "locate:2020_111", "locate:B100_P5"]


def test_no_references_uses_owner_search_once():
    adapter = FakeAdapter(references=[], owner_asset=_asset())

    result = _run(adapter)

    assert result.success
    assert result.filename == "springfield_xx_deed_owner_search.pdf"
    assert adapter.calls.count("owner") == 1
    assert not any(c.startswith("locate:") for c in adapter.calls)


def test_exhausted_references_fall_back_to_owner_search():
    adapter = FakeAdapter(
        references=[DocumentId(id="A"), DocumentId(id="B")],
        documents={"A": "not_found", "B": None},
        owner_asset=_asset(),
    )

    result = _run(adapter)

    assert result.success
    assert adapter.calls == ["identity", "references", "locate:A", "locate:B", "owner"]


def test_owner_search_not_called_after_success():
    adapter = FakeAdapter(references=[DocumentId(id="A")], documents={"A": _asset()}, owner_asset=_asset())

    assert _run(adapter).success
    assert "owner" not in adapter.calls


def test_no_references_and_no_owner_match_is_transaction_failure():
    adapter = FakeAdapter(references=[], owner_asset=None)

    result = _run(adapter)

    assert not result.success
    assert result.failure_stage is FailureStage.TRANSACTION
    assert result.pdf_bytes is None
    assert result.error


def test_exhausted_references_and_no_owner_match_is_document_failure():
    adapter = FakeAdapter(
        references=[DocumentId(id="A")],
        documents={"A": RuntimeError("viewer crashed")},
    )

    result = _run(adapter)

    assert result.failure_stage is FailureStage.DOCUMENT
    assert "viewer crashed" in result.error
    assert adapter.calls[-1] == "owner"


def test_reference_error_does_not_stop_the_walk():
    adapter = FakeAdapter(
        references=[DocumentId(id="A"), DocumentId(id="B")],
        documents={"A": RuntimeError("boom"), "B": _asset()},
    )

    result = _run(adapter)

    assert result.success
    assert result.filename.endswith("_deed_B.pdf")


def test_identity_error_is_identity_failure():
    adapter = FakeAdapter(identity_error=IdentityResolutionError("no parcel"))

    result = _run(adapter)

    assert result.failure_stage is FailureStage.IDENTITY
    assert "no parcel" in result.error
    assert adapter.calls == ["identity"]


def test_identity_without_county_is_identity_failure():
    adapter = FakeAdapter(identity=PropertyIdentity(parcel_id="P-1", owner_name="JANE DOE"))

    result = _run(adapter)

    assert result.failure_stage is FailureStage.IDENTITY
    assert adapter.calls == ["identity"]


def test_missing_owner_name_is_tolerated():
    identity = PropertyIdentity(parcel_id="P-1", county="Springfield", state="XX")
    adapter = FakeAdapter(identity=identity, references=[DocumentId(id="A")], documents={"A": _asset()})

    assert _run(adapter).success


def test_reference_lookup_error_is_transaction_failure():
    adapter = FakeAdapter(references_error=ConnectionError("sales table gone"))

    result = _run(adapter)

    assert result.failure_stage is FailureStage.TRANSACTION
    assert "sales table gone" in result.error


def test_corrupt_asset_is_materialize_failure():
    bad = DeedAsset(buffers=(b"this is not a deed image",))
    adapter = FakeAdapter(references=[DocumentId(id="A")], documents={"A": bad})

    result = _run(adapter)

    assert result.failure_stage is FailureStage.MATERIALIZE
    assert "corrupt asset" in result.error
    # Materialize failures never retry other references or the owner search
    assert "owner" not in adapter.calls


def test_empty_asset_counts_as_not_found():
    adapter = FakeAdapter(
        references=[DocumentId(id="A")],
        documents={"A": DeedAsset(buffers=(b"",))},
        owner_asset=_asset(),
    )

    result = _run(adapter)

    assert result.success
    assert "owner" in adapter.calls


def test_stage_timeout_is_reported_on_the_stage():
    class SlowAdapter(FakeAdapter):
        async def find_transaction_references(self, identity, ctx):
            await asyncio.sleep(5)
            return []

    result = _run(SlowAdapter(), stage_timeout_ms=50)

    assert result.failure_stage is FailureStage.TRANSACTION
    assert "timed out" in result.error


def test_malformed_references_raise_contract_error():
    class BrokenAdapter(FakeAdapter):
        async def find_transaction_references(self, identity, ctx):
            return ["B100/P5"]

    with pytest.raises(AdapterContractError):
        _run(BrokenAdapter())


def test_wrong_asset_type_raises_contract_error():
    adapter = FakeAdapter(references=[DocumentId(id="A")], documents={"A": b"%PDF raw bytes"})

    with pytest.raises(AdapterContractError):
        _run(adapter)


def test_diagnostics_and_elapsed_are_recorded():
    ctx = AdapterContext(address=QUERY.raw_address, run_id="test1234")
    adapter = FakeAdapter(references=[], owner_asset=None)

    result = asyncio.run(DeedOrchestrator().run(QUERY, adapter, ctx))

    assert result.elapsed_millis >= 0
    assert result.diagnostics is not ctx.diagnostics
    assert any("TRANSACTION" in line for line in result.diagnostics)


def test_payload_shapes():
    ok = _run(FakeAdapter(references=[DocumentId(id="A")], documents={"A": _asset()}))
    payload = ok.to_payload()
    assert payload["success"] is True
    assert base64.b64decode(payload["pdfBase64"]) == ok.pdf_bytes
    assert payload["fileSizeBytes"] == len(ok.pdf_bytes)
    assert "failureStage" not in payload

    failed = _run(FakeAdapter(references=[], owner_asset=None)).to_payload()
    assert failed["success"] is False
    assert failed["failureStage"] == "TRANSACTION"
    assert failed["fileSizeBytes"] == 0
    assert "pdfBase64" not in failed


def test_build_filename_slugs_county_and_state():
    identity = PropertyIdentity(county="Palm Beach", state="FL")
    assert build_filename(identity, "12345") == "palm_beach_fl_deed_12345.pdf"


def test_run_sync():
    adapter = FakeAdapter(references=[], owner_asset=_asset())
    assert DeedOrchestrator().run_sync(QUERY, adapter).success


def test_first_successful_reference_stops_the_walk():
    adapter = FakeAdapter(
        references=[DocumentId(id="R1"), DocumentId(id="R2"), DocumentId(id="R3")],
        documents={"R1": _asset(), "R2": _asset(), "R3": _asset()},
        owner_asset=_asset(),
    )

    result = _run(adapter)

    assert result.success
    assert result.filename.endswith("_deed_R1.pdf")
    assert adapter.calls == ["identity", "references", "locate:R1"]


def test_single_png_document_end_to_end():
    from priordeed.materializer import page_sizes

    identity = PropertyIdentity(parcel_id="T-1", owner_name="TEST OWNER", county="Test", state="XX")
    adapter = FakeAdapter(
        identity=identity,
        references=[DocumentId(id="D1")],
        documents={"D1": DeedAsset(buffers=(make_png(100, 50),))},
    )

    payload = _run(adapter).to_payload()

    assert payload["success"] is True
    assert payload["filename"] == "test_xx_deed_D1.pdf"
    pdf = base64.b64decode(payload["pdfBase64"])
    assert page_count(pdf) == 1
    assert page_sizes(pdf)[0] == pytest.approx((100, 50), abs=0.5)


def test_three_garbage_bytes_fail_materialize():
    adapter = FakeAdapter(references=[DocumentId(id="D1")], documents={"D1": DeedAsset(buffers=(b"\x00\x01\x02",))})

    result = _run(adapter)

    assert result.failure_stage is FailureStage.MATERIALIZE
    assert "corrupt asset" in result.error
    assert result.pdf_bytes is None


def test_tiff_with_unreadable_second_page_is_one_page():
    from conftest import break_tiff_ifd, make_tiff

    asset = DeedAsset(buffers=(break_tiff_ifd(make_tiff(2), frame=1),))
    adapter = FakeAdapter(references=[DocumentId(id="D1")], documents={"D1": asset})

    result = _run(adapter)

    assert result.success
    assert page_count(result.pdf_bytes) == 1


def test_locate_call_raising_before_await_is_contained():
    class EagerAdapter(FakeAdapter):
        def locate_document(self, reference, ctx):
            raise RuntimeError("raised before any await")

    adapter = EagerAdapter(references=[DocumentId(id="A")], owner_asset=_asset())

    result = _run(adapter)

    assert result.success
    assert result.filename.endswith("_deed_owner_search.pdf")


def test_result_diagnostics_are_immutable():
    result = _run(FakeAdapter(references=[], owner_asset=None))

    assert isinstance(result.diagnostics, tuple)
    with pytest.raises(AttributeError):
        result.diagnostics.append("late note")
