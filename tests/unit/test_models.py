"""Unit tests for client session data models."""

import re

from toolforge.client.models import (
    GeneratedImageAsset,
    GenerationRequest,
    PaymentPhase,
    SessionState,
    new_request_id,
)
from toolforge.core.variants import VariantTag


class TestRequestId:
    """Tests for new_request_id."""

    def test_format(self):
        assert re.fullmatch(r"req_\d{13}_[0-9a-z]{9}", new_request_id())

    def test_unique(self):
        assert len({new_request_id() for _ in range(100)}) == 100


class TestPaymentPhase:
    """Wire values of the payment phases."""

    def test_values(self):
        assert [phase.value for phase in PaymentPhase] == [
            "awaiting-approval",
            "approval-pending",
            "awaiting-payment",
            "payment-pending",
            "confirmed",
            "failed",
        ]


class TestGeneratedImageAsset:
    """Tests for GeneratedImageAsset.from_response."""

    def test_from_response(self):
        asset = GeneratedImageAsset.from_response(
            VariantTag.OG,
            {
                "base64": "abc",
                "url": None,
                "type": "og",
                "originalPrompt": "robots",
                "projectTemplate": "T",
                "optimizedPrompt": "P",
                "spec": {"type": "og"},
            },
        )
        assert asset.variant is VariantTag.OG
        assert asset.style_template == "T"
        assert asset.derived_prompt == "P"
        assert asset.spec == {"type": "og"}

    def test_minimal_response(self):
        asset = GeneratedImageAsset.from_response(VariantTag.ICON, {"base64": "abc"})
        assert asset.original_prompt is None


class TestSessionState:
    """Tests for SessionState defaults."""

    def test_defaults(self):
        state = SessionState()
        assert state.request is None
        assert state.payment_phase is PaymentPhase.AWAITING_APPROVAL
        assert state.images == {}
        assert state.fulfilled_request_ids == set()
        assert state.generating is False

    def test_instances_do_not_share_collections(self):
        first, second = SessionState(), SessionState()
        first.fulfilled_request_ids.add("req_1")
        assert second.fulfilled_request_ids == set()

    def test_repr(self):
        state = SessionState(request=GenerationRequest(id="req_1", prompt="robots"), total=4)
        assert repr(state) == "SessionState(request=req_1, phase=awaiting-approval, progress=0/4)"
