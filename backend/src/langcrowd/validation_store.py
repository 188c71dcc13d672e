"""
Validation Store: append-only log of reviewer decisions.
"""
from typing import List, Optional

from .content import clean_value
from .errors import SchemaError
from .models import Validation, new_id
from .store import Store, Transaction


class ValidationStore:

    def __init__(self, store: Store):
        self.store = store

    def record(
        self,
        txn: Transaction,
        contribution_id: str,
        reviewer_id: str,
        is_approved: bool,
        comment: Optional[str] = None,
    ) -> Validation:
        """
        Stage a new validation record.

        Raises:
            SchemaError: rejecting without a comment, or no reviewer given
        """
        if not clean_value(reviewer_id):
            raise SchemaError('Reviewer is required')
        comment = clean_value(comment) or ''
        if not is_approved and not comment:
            raise SchemaError('A comment is required when rejecting a contribution')

        validation = Validation(
            validation_id=new_id(),
            contribution_id=contribution_id,
            reviewer_id=reviewer_id,
            is_approved=bool(is_approved),
            comment=comment,
        )
        txn.put_validation(validation)
        return validation

    def latest_for(self, contribution_id: str) -> Optional[Validation]:
        return self.store.latest_validation(contribution_id)

    def history(self, contribution_id: str) -> List[Validation]:
        return self.store.validations_for(contribution_id)
