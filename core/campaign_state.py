# Campaign Lifecycle for Dexter Marketplace
# Single transition table for every campaign status change

from enum import Enum
from typing import Dict, Optional, Tuple

from database.marketplace_models import CampaignStatusDB as S
from core.errors import InvalidTransition


class CampaignAction(str, Enum):
    RECEIVE_BID = "receive_bid"          # brand invites / bid placed
    REOPEN = "reopen"                    # last pending bid rejected or withdrawn
    ACCEPT = "accept"                    # brand accepts a bid; escrow lock
    START = "start"
    SUBMIT_DRAFT = "submit_draft"
    REQUEST_REVISION = "request_revision"
    APPROVE_DRAFT = "approve_draft"
    PUBLISH = "publish"
    COMPLETE = "complete"                # escrow release
    DISPUTE = "dispute"
    CANCEL = "cancel"                    # escrow refund if a hold exists
    RESOLVE_COMPLETED = "resolve_completed"  # dispute settled, campaign completes
    RESOLVE_CANCELLED = "resolve_cancelled"  # dispute settled, campaign cancelled
    CLOSE_DISPUTE = "close_dispute"      # back to the pre-dispute status


DISPUTABLE_STATUSES = frozenset({
    S.ACCEPTED, S.IN_PROGRESS, S.DRAFT_SUBMITTED, S.REVISION_REQUESTED,
    S.DRAFT_APPROVED, S.PUBLISHED,
})

CANCELLABLE_STATUSES = frozenset({S.OPEN, S.PENDING, S.ACCEPTED})

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED})


TRANSITIONS: Dict[Tuple[S, CampaignAction], Optional[S]] = {
    (S.OPEN, CampaignAction.RECEIVE_BID): S.PENDING,
    (S.PENDING, CampaignAction.REOPEN): S.OPEN,
    (S.PENDING, CampaignAction.ACCEPT): S.ACCEPTED,
    (S.ACCEPTED, CampaignAction.START): S.IN_PROGRESS,
    (S.IN_PROGRESS, CampaignAction.SUBMIT_DRAFT): S.DRAFT_SUBMITTED,
    (S.DRAFT_SUBMITTED, CampaignAction.REQUEST_REVISION): S.REVISION_REQUESTED,
    (S.DRAFT_SUBMITTED, CampaignAction.APPROVE_DRAFT): S.DRAFT_APPROVED,
    (S.REVISION_REQUESTED, CampaignAction.SUBMIT_DRAFT): S.DRAFT_SUBMITTED,
    (S.DRAFT_APPROVED, CampaignAction.PUBLISH): S.PUBLISHED,
    (S.PUBLISHED, CampaignAction.COMPLETE): S.COMPLETED,
    (S.DISPUTED, CampaignAction.RESOLVE_COMPLETED): S.COMPLETED,
    (S.DISPUTED, CampaignAction.RESOLVE_CANCELLED): S.CANCELLED,
}
TRANSITIONS.update({(source, CampaignAction.DISPUTE): S.DISPUTED for source in DISPUTABLE_STATUSES})
TRANSITIONS.update({(source, CampaignAction.CANCEL): S.CANCELLED for source in CANCELLABLE_STATUSES})
# CLOSE_DISPUTE targets depend on the recorded pre-dispute status
TRANSITIONS.update({(S.DISPUTED, CampaignAction.CLOSE_DISPUTE): None})


def next_status(current: S, action: CampaignAction, restore_to: Optional[S] = None) -> S:
    """Return the target status for `action`, or raise InvalidTransition."""
    key = (S(current), action)
    if key not in TRANSITIONS:
        raise InvalidTransition(f"Cannot {action.value} a campaign in status '{S(current).value}'")

    target = TRANSITIONS[key]
    if action == CampaignAction.CLOSE_DISPUTE:
        if restore_to is None or S(restore_to) not in DISPUTABLE_STATUSES:
            raise InvalidTransition(f"Cannot restore disputed campaign to '{restore_to}'")
        target = S(restore_to)
    return target


def can_transition(current: S, action: CampaignAction) -> bool:
    return (S(current), action) in TRANSITIONS
