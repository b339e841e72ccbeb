"""
Junk filter: classifies inbound leads against blocklisted email/phone values.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from django.db import DatabaseError, IntegrityError, transaction

from rotations.models import JunkRule, Lead, LeadLog
from rotations.services import audit

logger = logging.getLogger(__name__)

DEFAULT_JUNK_REASON = 'Marked as junk by admin'


@dataclass
class JunkClassification:
    is_junk: bool
    reason: Optional[str] = None
    matched_rule: Optional[JunkRule] = None


NOT_JUNK = JunkClassification(is_junk=False)


def normalize_rule_value(rule_type: str, value) -> str:
    """Emails are compared trimmed and lower-cased, phones trimmed."""
    return JunkRule.normalize_value(rule_type, value)


def classify(email: Optional[str] = None, phone: Optional[str] = None) -> JunkClassification:
    """
    Check a lead's contact values against the junk rules.

    Only present values are checked; a lead with neither is never junk.
    If the rule store cannot be queried the lead is treated as not junk.
    """
    candidates = []
    email_value = normalize_rule_value(JunkRule.RuleType.EMAIL, email)
    phone_value = normalize_rule_value(JunkRule.RuleType.PHONE, phone)
    if email_value:
        candidates.append((JunkRule.RuleType.EMAIL, email_value))
    if phone_value:
        candidates.append((JunkRule.RuleType.PHONE, phone_value))

    if not candidates:
        return NOT_JUNK

    for rule_type, value in candidates:
        try:
            with transaction.atomic():
                rule = JunkRule.objects.filter(rule_type=rule_type, value=value).first()
        except DatabaseError as e:
            logger.warning(f"Junk rule lookup unavailable, treating lead as not junk: {e}")
            return NOT_JUNK

        if rule is not None:
            reason = rule.reason or f"Matched junk {rule_type}"
            logger.info(f"Lead classified as junk: {rule_type} '{value}' matched rule {rule.id}")
            return JunkClassification(is_junk=True, reason=reason, matched_rule=rule)

    return NOT_JUNK


def add_rule(rule_type: str, value, reason: Optional[str] = None) -> Tuple[Optional[JunkRule], bool]:
    """
    Insert a junk rule. Inserting an existing (type, value) pair is a no-op.

    Returns:
        Tuple of (rule, created); rule is None when the value is empty.

    Raises:
        ValueError: If rule_type is not 'email' or 'phone'
    """
    if rule_type not in JunkRule.RuleType.values:
        raise ValueError(f"Unknown junk rule type: {rule_type}")

    normalized = normalize_rule_value(rule_type, value)
    if not normalized:
        return None, False

    try:
        with transaction.atomic():
            rule, created = JunkRule.objects.get_or_create(
                rule_type=rule_type,
                value=normalized,
                defaults={'reason': reason},
            )
    except IntegrityError:
        # Concurrent insert of the same rule
        rule, created = JunkRule.objects.get(rule_type=rule_type, value=normalized), False

    if created:
        logger.info(f"Junk rule created: {rule_type} '{normalized}'")
    else:
        logger.debug(f"Junk rule already exists: {rule_type} '{normalized}'")
    return rule, created


def mark_lead_as_junk(lead_id: int, reason: Optional[str] = None) -> List[dict]:
    """
    Mark a lead as junk and learn junk rules from its contact values.

    Other leads with the same values are not touched.

    Returns:
        The junk rules newly created, as [{'type': ..., 'value': ...}]

    Raises:
        Lead.DoesNotExist: If the lead does not exist
    """
    reason = reason or DEFAULT_JUNK_REASON

    with transaction.atomic():
        lead = Lead.objects.select_for_update().get(id=lead_id)
        lead.status = Lead.Status.JUNK
        lead.status_reason = reason
        lead.save(update_fields=['status', 'status_reason'])

    logger.info(f"Lead {lead_id} marked as junk: {reason}")

    created_rules = []
    for rule_type, value in ((JunkRule.RuleType.EMAIL, lead.email), (JunkRule.RuleType.PHONE, lead.phone)):
        if not value:
            continue
        try:
            rule, created = add_rule(rule_type, value, reason)
        except DatabaseError as e:
            logger.warning(f"Could not add junk {rule_type} rule for lead {lead_id}: {e}")
            continue
        if created:
            created_rules.append({'type': rule.rule_type, 'value': rule.value})

    audit.record(
        audit.LEAD_MARKED_JUNK,
        f"Lead marked as junk: {reason}",
        status=LeadLog.EventStatus.WARNING,
        rotation_id=lead.rotation_id,
        lead_id=lead.id,
        slot_id=lead.slot_id,
        details={'reason': reason, 'junk_rules_created': created_rules},
    )

    return created_rules
