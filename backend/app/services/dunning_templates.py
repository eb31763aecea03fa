"""Dunning sequences and message templates.

Templates are keyed by ``TemplateKey(campaign_type, channel, step)``. An A/B
group may register its own copy for a key; ``resolve_template`` returns that
variant when present and the baseline otherwise.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from app.models.dunning_campaign import CampaignType
from app.models.dunning_communication import CommunicationChannel


@dataclass(frozen=True)
class SequenceStep:
    day: int
    channels: tuple[str, ...]
    urgency: str


_EMAIL = CommunicationChannel.EMAIL.value
_SMS = CommunicationChannel.SMS.value
_IN_APP = CommunicationChannel.IN_APP.value

SEQUENCES: dict[str, tuple[SequenceStep, ...]] = {
    CampaignType.STANDARD.value: (
        SequenceStep(1, (_EMAIL,), "low"),
        SequenceStep(3, (_EMAIL,), "medium"),
        SequenceStep(7, (_EMAIL, _SMS), "high"),
        SequenceStep(10, (_EMAIL, _SMS), "critical"),
        SequenceStep(30, (_EMAIL,), "final"),
    ),
    CampaignType.HIGH_VALUE.value: (
        SequenceStep(1, (_EMAIL,), "low"),
        SequenceStep(2, (_EMAIL, _SMS), "medium"),
        SequenceStep(5, (_EMAIL, _SMS), "high"),
        SequenceStep(8, (_EMAIL, _SMS, _IN_APP), "critical"),
        SequenceStep(14, (_EMAIL, _SMS), "final"),
    ),
    CampaignType.AT_RISK.value: (
        SequenceStep(0, (_EMAIL, _IN_APP), "immediate"),
        SequenceStep(1, (_EMAIL, _SMS), "high"),
        SequenceStep(3, (_EMAIL, _SMS, _IN_APP), "critical"),
        SequenceStep(7, (_EMAIL, _SMS), "final"),
    ),
}

AB_TEST_GROUPS = ("control", "variant_a", "variant_b")


def get_sequence(campaign_type: str) -> tuple[SequenceStep, ...]:
    try:
        return SEQUENCES[campaign_type]
    except KeyError:
        raise ValueError(f"Unknown campaign type: {campaign_type}") from None


@dataclass(frozen=True)
class TemplateKey:
    campaign_type: str
    channel: str
    step: int


@dataclass(frozen=True)
class CampaignTemplate:
    id: str
    content: str
    subject: str | None = None


class TemplateRegistry:
    """Baseline templates plus optional per-A/B-group variants."""

    def __init__(self) -> None:
        self._baseline: dict[TemplateKey, CampaignTemplate] = {}
        self._variants: dict[tuple[TemplateKey, str], CampaignTemplate] = {}

    def register(
        self,
        key: TemplateKey,
        template: CampaignTemplate,
        ab_test_group: str | None = None,
    ) -> None:
        if ab_test_group is None:
            self._baseline[key] = template
        else:
            self._variants[(key, ab_test_group)] = template

    def resolve(self, key: TemplateKey, ab_test_group: str | None = None) -> CampaignTemplate | None:
        if ab_test_group is not None:
            variant = self._variants.get((key, ab_test_group))
            if variant is not None:
                return variant
        return self._baseline.get(key)

    def __len__(self) -> int:
        return len(self._baseline) + len(self._variants)


_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def personalize(template: str, data: dict[str, Any]) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left as-is."""

    def _replace(match: re.Match[str]) -> str:
        value = data.get(match.group(1))
        return match.group(0) if value is None else str(value)

    return _PLACEHOLDER.sub(_replace, template)


_TEMPLATE_PREFIX = {
    CampaignType.STANDARD.value: "std",
    CampaignType.HIGH_VALUE.value: "hv",
    CampaignType.AT_RISK.value: "risk",
}

_EMAIL_SUBJECTS = {
    "immediate": "Payment Failed - Action Required for {{company_name}}",
    "low": "Payment Update Required - {{company_name}}",
    "medium": "Reminder: Payment Required - {{company_name}}",
    "high": "Action Needed: Your {{company_name}} Account Is at Risk",
    "critical": "Urgent: Your {{company_name}} Account Will Be Suspended",
    "final": "Final Notice: Payment Required - {{company_name}}",
}

_EMAIL_LEADS = {
    "immediate": "We just tried to process your payment for {{company_name}} and it did not go through.",
    "low": "We had trouble processing your payment for your {{company_name}} subscription.",
    "medium": "We're following up on our previous email about your payment issue.",
    "high": "Your {{company_name}} payment is still outstanding and your account is at risk.",
    "critical": "Your {{company_name}} account will be suspended soon unless we receive payment.",
    "final": "This is our final notice about the outstanding payment on your {{company_name}} account.",
}

_SHORT_MESSAGES = {
    "immediate": "{{company_name}}: Your payment failed. Update your payment method: {{billing_url}}",
    "low": "{{company_name}}: We couldn't process your payment. Update it here: {{billing_url}}",
    "medium": "{{company_name}}: Reminder, your payment is still due. Update it: {{billing_url}}",
    "high": "{{company_name}}: Your account is at risk due to a failed payment. Update: {{billing_url}}",
    "critical": (
        "{{company_name}}: Your account will be suspended soon due to payment failure. "
        "Update your payment: {{billing_url}}"
    ),
    "final": "{{company_name}}: Final notice. Update your payment today to keep access: {{billing_url}}",
}


def _email_body(lead: str, greeting: str = "Hi {{customer_first_name}},") -> str:
    return (
        f"{greeting}\n\n"
        f"{lead}\n\n"
        "To keep your account active, please update your payment information:\n"
        "{{billing_url}}\n\n"
        "If you have any questions, we're here to help at {{support_email}}.\n\n"
        "Best regards,\n"
        "The {{company_name}} Team"
    )


def _baseline_template(campaign_type: str, channel: str, step: int, urgency: str) -> CampaignTemplate:
    template_id = f"{_TEMPLATE_PREFIX[campaign_type]}_{channel}_{step}"
    if channel == _EMAIL:
        greeting = (
            "Dear {{customer_name}},"
            if campaign_type == CampaignType.HIGH_VALUE.value
            else "Hi {{customer_first_name}},"
        )
        return CampaignTemplate(
            id=template_id,
            subject=_EMAIL_SUBJECTS[urgency],
            content=_email_body(_EMAIL_LEADS[urgency], greeting),
        )
    if channel == _IN_APP:
        return CampaignTemplate(
            id=template_id,
            subject="Payment issue on your account",
            content=_SHORT_MESSAGES[urgency],
        )
    return CampaignTemplate(id=template_id, content=_SHORT_MESSAGES[urgency])


def build_default_registry() -> TemplateRegistry:
    registry = TemplateRegistry()
    for campaign_type, sequence in SEQUENCES.items():
        for step_number, step in enumerate(sequence, start=1):
            for channel in step.channels:
                registry.register(
                    TemplateKey(campaign_type, channel, step_number),
                    _baseline_template(campaign_type, channel, step_number, step.urgency),
                )

    registry.register(
        TemplateKey(CampaignType.STANDARD.value, _EMAIL, 2),
        CampaignTemplate(
            id="std_email_2",
            subject="Reminder: Payment Required - {{company_name}}",
            content=(
                "Hi {{customer_first_name}},\n\n"
                "We're following up on our previous email about your payment issue. "
                "Your {{company_name}} account will be suspended soon if we don't receive payment.\n\n"
                "Please update your payment method immediately:\n"
                "{{billing_url}}\n\n"
                "Need assistance? Contact us:\n"
                "{{support_email}}\n"
                "{{support_phone}}\n\n"
                "Best regards,\n"
                "The {{company_name}} Team"
            ),
        ),
    )
    registry.register(
        TemplateKey(CampaignType.HIGH_VALUE.value, _EMAIL, 1),
        CampaignTemplate(
            id="hv_email_1",
            subject="Priority Support: Payment Issue - {{company_name}}",
            content=(
                "Dear {{customer_name}},\n\n"
                "As a valued {{company_name}} customer, we wanted to personally reach out "
                "about a payment issue with your account.\n\n"
                "We're here to help resolve this quickly:\n"
                "{{billing_url}}\n\n"
                "Or contact your dedicated support specialist:\n"
                "{{support_email}}\n"
                "{{support_phone}}\n\n"
                "We appreciate your business and want to ensure uninterrupted service.\n\n"
                "Best regards,\n"
                "Customer Success Team\n"
                "{{company_name}}"
            ),
        ),
    )
    registry.register(
        TemplateKey(CampaignType.STANDARD.value, _SMS, 3),
        CampaignTemplate(
            id="std_sms_3",
            content=(
                "{{company_name}}: Your account will be suspended soon due to payment failure. "
                "Update your payment: {{billing_url}} or reply HELP for assistance."
            ),
        ),
    )

    # A/B copy
    registry.register(
        TemplateKey(CampaignType.STANDARD.value, _EMAIL, 1),
        CampaignTemplate(
            id="std_email_1_a",
            subject="{{customer_first_name}}, your {{company_name}} payment didn't go through",
            content=_email_body(
                "Your latest {{company_name}} payment was declined. "
                "It only takes a minute to fix, and your account stays fully active meanwhile."
            ),
        ),
        ab_test_group="variant_a",
    )
    registry.register(
        TemplateKey(CampaignType.AT_RISK.value, _EMAIL, 1),
        CampaignTemplate(
            id="risk_email_1_a",
            subject="Keep your {{company_name}} account running",
            content=_email_body(
                "Another payment on your {{company_name}} account has failed. "
                "Updating your card now avoids any interruption to your service."
            ),
        ),
        ab_test_group="variant_a",
    )
    return registry


DEFAULT_REGISTRY = build_default_registry()


def resolve_template(
    key: TemplateKey,
    ab_test_group: str | None = None,
    registry: TemplateRegistry | None = None,
) -> CampaignTemplate | None:
    return (registry if registry is not None else DEFAULT_REGISTRY).resolve(key, ab_test_group)
