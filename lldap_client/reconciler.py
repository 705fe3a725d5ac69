"""
Reconciliation of declared memberships and attribute values with LLDAP.

Each reconciliation reads the authoritative state, computes the set
difference against the desired state and applies one repository call per
differing element: additions first, then removals. The first failing call
aborts the run; operations already applied are not rolled back, and running
the reconciliation again converges from wherever the remote state is.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from lldap_client.repository import EntityRepository

logger = logging.getLogger(__name__)


class ReconcileResult:
    """Operations issued by one reconciliation run, in the order they were applied."""

    def __init__(self):
        self.added = []
        self.removed = []

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)

    def __repr__(self):
        return f"ReconcileResult(added={self.added!r}, removed={self.removed!r})"


def compute_delta(desired: Iterable, current: Iterable) -> Tuple[List, List]:
    """
    Compute the additions and removals that turn ``current`` into ``desired``.

    Returns:
        Tuple of (to_add, to_remove), each sorted for a stable apply order
    """
    desired_set = set(desired)
    current_set = set(current)
    to_add = sorted(desired_set - current_set)
    to_remove = sorted(current_set - desired_set)
    return to_add, to_remove


def _same_values(current: List[str], desired: List[str]) -> bool:
    return sorted(current) == sorted(desired)


class Reconciler:
    """Converges memberships and attribute assignments to a desired state."""

    def __init__(self, repository: EntityRepository):
        self.repository = repository

    # Memberships

    def reconcile_group_members(self, group_id: int, desired_user_ids: Iterable[str]) -> ReconcileResult:
        """
        Make ``desired_user_ids`` the exact member list of group ``group_id``.

        User ids are compared case-insensitively; the server stores them lowercased.
        """
        group = self.repository.get_group(group_id)
        to_add, to_remove = compute_delta(
            (u.lower() for u in desired_user_ids),
            (u.lower() for u in group.user_ids()),
        )

        logger.debug(f"Group {group_id}: {len(to_add)} to add, {len(to_remove)} to remove")

        result = ReconcileResult()
        for user_id in to_add:
            self.repository.add_user_to_group(group_id, user_id)
            result.added.append(user_id)
        for user_id in to_remove:
            self.repository.remove_user_from_group(group_id, user_id)
            result.removed.append(user_id)

        logger.info(f"Group {group_id}: {len(result.added)} added, {len(result.removed)} removed")
        return result

    def reconcile_user_groups(self, user_id: str, desired_group_ids: Iterable[int]) -> ReconcileResult:
        """Make ``desired_group_ids`` the exact group list of user ``user_id``."""
        user = self.repository.get_user(user_id)
        to_add, to_remove = compute_delta((int(g) for g in desired_group_ids), user.group_ids())

        logger.debug(f"User {user.id}: {len(to_add)} groups to join, {len(to_remove)} to leave")

        result = ReconcileResult()
        for group_id in to_add:
            self.repository.add_user_to_group(group_id, user.id)
            result.added.append(group_id)
        for group_id in to_remove:
            self.repository.remove_user_from_group(group_id, user.id)
            result.removed.append(group_id)

        logger.info(f"User {user.id}: joined {len(result.added)} groups, left {len(result.removed)}")
        return result

    def verify_membership_symmetry(self, group_id: int) -> List[str]:
        """
        List members of ``group_id`` whose own group list does not contain it.

        Nothing is repaired; an empty list means both views agree.
        """
        group = self.repository.get_group(group_id)
        asymmetric = []
        for user_id in sorted(group.user_ids()):
            user = self.repository.get_user(user_id)
            if group.id not in user.group_ids():
                asymmetric.append(user_id)
        if asymmetric:
            logger.warning(f"Group {group_id} membership disagrees with users: {', '.join(asymmetric)}")
        return asymmetric

    # Attribute assignments

    def reconcile_user_attribute(self, user_id: str, name: str, values: List[str]) -> ReconcileResult:
        """Assign ``values`` to attribute ``name`` of a user, replacing any other value set."""
        user = self.repository.get_user(user_id)
        result = ReconcileResult()
        self._apply_attribute(
            result, user.attribute_values(), name, list(values),
            lambda: self.repository.add_attribute_to_user(user.id, name, list(values)),
            lambda: self.repository.remove_attribute_from_user(user.id, name),
        )
        return result

    def reconcile_group_attribute(self, group_id: int, name: str, values: List[str]) -> ReconcileResult:
        """Assign ``values`` to attribute ``name`` of a group, replacing any other value set."""
        group = self.repository.get_group(group_id)
        result = ReconcileResult()
        self._apply_attribute(
            result, group.attribute_values(), name, list(values),
            lambda: self.repository.add_attribute_to_group(group_id, name, list(values)),
            lambda: self.repository.remove_attribute_from_group(group_id, name),
        )
        return result

    def reconcile_user_attributes(self, user_id: str, desired: Dict[str, List[str]]) -> ReconcileResult:
        """Make ``desired`` the exact set of custom attributes of a user."""
        user = self.repository.get_user(user_id)
        return self._reconcile_attributes(
            user.attribute_values(), desired,
            lambda name, values: self.repository.add_attribute_to_user(user.id, name, values),
            lambda name: self.repository.remove_attribute_from_user(user.id, name),
        )

    def reconcile_group_attributes(self, group_id: int, desired: Dict[str, List[str]]) -> ReconcileResult:
        """Make ``desired`` the exact set of custom attributes of a group."""
        group = self.repository.get_group(group_id)
        return self._reconcile_attributes(
            group.attribute_values(), desired,
            lambda name, values: self.repository.add_attribute_to_group(group_id, name, values),
            lambda name: self.repository.remove_attribute_from_group(group_id, name),
        )

    def _reconcile_attributes(self, current: Dict[str, List[str]], desired: Dict[str, List[str]],
                              add, remove) -> ReconcileResult:
        result = ReconcileResult()
        for name in sorted(desired):
            values = list(desired[name])
            self._apply_attribute(
                result, current, name, values,
                lambda name=name, values=values: add(name, values),
                lambda name=name: remove(name),
            )
        _, to_remove = compute_delta(desired.keys(), current.keys())
        for name in to_remove:
            remove(name)
            result.removed.append(name)
        return result

    @staticmethod
    def _apply_attribute(result: ReconcileResult, current: Dict[str, List[str]], name: str,
                         values: List[str], add, remove):
        # No replace primitive exists remotely: a changed value set is removed, then added again.
        existing: Optional[List[str]] = current.get(name)
        if existing is not None and _same_values(existing, values):
            logger.debug(f"Attribute {name} already up to date")
            return
        if existing is not None:
            remove()
            result.removed.append(name)
        add()
        result.added.append(name)
