"""Tests for shared utility functions."""

import logging
from datetime import datetime, timezone

import pytest

from cea_agent.logging_context import (
    ConversationIdFilter,
    RequestContext,
    get_conversation_id,
    get_conversation_logger,
    get_current_context,
    run_with_context,
    update_context,
    use_context,
)
from cea_agent.prompts.prompt_templates import build_context_header, build_handoff_message
from cea_agent.utils import (
    business_now,
    coerce_float,
    coerce_int,
    format_business_datetime,
    normalize_contract,
)


class TestNormalizeContract:
    def test_strips_separators(self):
        assert normalize_contract(" 523-160 ") == "523160"

    def test_strips_words(self):
        assert normalize_contract("Contrato #123456") == "123456"

    def test_empty(self):
        assert normalize_contract("") == ""
        assert normalize_contract(None) == ""


class TestCoerceNumbers:
    def test_currency_text(self):
        assert coerce_float("$1,234.50") == 1234.5

    def test_blank_uses_default(self):
        assert coerce_float("  ") == 0.0
        assert coerce_float(None, 3.0) == 3.0

    def test_numeric_passthrough(self):
        assert coerce_float(7) == 7.0

    def test_non_numeric_raises(self):
        with pytest.raises(ValueError):
            coerce_float("N/A")

    def test_int(self):
        assert coerce_int("12.0") == 12
        assert coerce_int("") == 0


class TestBusinessTime:
    def test_converts_utc_to_local(self):
        local = business_now(datetime(2025, 3, 4, 3, 0, tzinfo=timezone.utc))
        assert (local.day, local.hour) == (3, 21)

    def test_naive_is_treated_as_utc(self):
        local = business_now(datetime(2025, 3, 3, 18, 0))
        assert local.hour == 12

    def test_spanish_format(self):
        text = format_business_datetime(datetime(2025, 3, 3, 18, 5, tzinfo=timezone.utc))
        assert text == "lunes 3 de marzo de 2025, 12:05"


class TestPromptTemplates:
    def test_header_with_slots(self):
        header = build_context_header(
            datetime(2025, 3, 3, 18, 0, tzinfo=timezone.utc), {"contrato": "523160", "localidad": "Centro"}
        )
        assert header.startswith("[Fecha y hora: lunes 3 de marzo de 2025, 12:00")
        assert header.endswith("| contrato: 523160 | localidad: Centro]")

    def test_header_without_slots(self):
        header = build_context_header(datetime(2025, 3, 3, 18, 0, tzinfo=timezone.utc))
        assert "contrato" not in header

    def test_handoff_message(self):
        message = build_handoff_message("URG-20250303-0001")
        assert "URG-20250303-0001" in message
        assert "provisional" not in message

    def test_handoff_message_with_warning(self):
        assert "provisional" in build_handoff_message("URG-20250303-0001", warning="store down")


class TestLoggingContext:
    def test_filter_injects_conversation_id(self):
        record = logging.LogRecord("t", logging.INFO, __file__, 1, "msg", None, None)
        with use_context(RequestContext(conversation_id="wa-5215512345678")):
            ConversationIdFilter().filter(record)
        assert record.conversation_id == "wa-5215512345678"

    def test_default_conversation_id(self):
        assert get_conversation_id() == "-"

    def test_update_context_is_scoped(self):
        with use_context(RequestContext(conversation_id="c1")):
            update_context(contract_number="523160")
            assert get_current_context().contract_number == "523160"
        assert get_current_context().contract_number is None

    def test_logger_gets_single_filter(self):
        logger = get_conversation_logger("cea_agent.tests.filter")
        get_conversation_logger("cea_agent.tests.filter")
        assert sum(isinstance(f, ConversationIdFilter) for f in logger.filters) == 1

    @pytest.mark.asyncio
    async def test_run_with_context_scopes_the_call(self):
        async def read_context(suffix):
            return get_current_context().channel + suffix, get_conversation_id()

        context = RequestContext(conversation_id="wa-1", channel="whatsapp")
        assert await run_with_context(context, read_context, "!") == ("whatsapp!", "wa-1")
        assert get_current_context().channel is None
        assert get_conversation_id() == "-"
