import enum


class POStatus(str, enum.Enum):
    draft = "DRAFT"
    finalized = "FINALIZED"
    stock_posted = "STOCK_POSTED"
    stock_reversed = "STOCK_REVERSED"


class MovementKind(str, enum.Enum):
    purchase_post = "PURCHASE_POST"
    purchase_reverse = "PURCHASE_REVERSE"


class MovementDirection(str, enum.Enum):
    inbound = "IN"
    outbound = "OUT"


class BulkAction(str, enum.Enum):
    post = "post"
    reverse = "reverse"
    delete = "delete"


# Statuses from which stock may be posted. FINALIZED and STOCK_REVERSED are
# re-postable aliases of DRAFT.
POSTABLE_STATUSES = frozenset({POStatus.draft, POStatus.finalized, POStatus.stock_reversed})
REVERSIBLE_STATUSES = frozenset({POStatus.stock_posted})
EDITABLE_STATUSES = frozenset({POStatus.draft, POStatus.stock_reversed})
DELETABLE_STATUSES = frozenset(POStatus)

BULK_ELIGIBILITY = {
    BulkAction.post: POSTABLE_STATUSES,
    BulkAction.reverse: REVERSIBLE_STATUSES,
    BulkAction.delete: DELETABLE_STATUSES,
}
