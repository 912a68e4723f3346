"""
Change set construction for TXT record sets.

Cloud DNS has no update call: a record set is modified by deleting its exact
current version and adding the new version in one change.
"""
import copy
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

RECORD_TTL = 10

RRSet = Dict[str, Any]


def quote_txt(value: str) -> str:
    return '"{0}"'.format(value)


class ChangeRequest(object):
    """Deletions and additions submitted atomically to the changes endpoint."""

    def __init__(self, deletions: Optional[List[RRSet]] = None,
                 additions: Optional[List[RRSet]] = None) -> None:
        self.deletions = deletions or []
        self.additions = additions or []

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": "dns#change"}
        if self.additions:
            data["additions"] = self.additions
        if self.deletions:
            data["deletions"] = self.deletions
        return data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ChangeRequest):
            return NotImplemented
        return self.deletions == other.deletions and self.additions == other.additions

    def __repr__(self) -> str:
        return "ChangeRequest(deletions={0!r}, additions={1!r})".format(
            self.deletions, self.additions)


def new_txt_rrset(record_name: str, values: List[str], ttl: int = RECORD_TTL) -> RRSet:
    return {
        "kind": "dns#resourceRecordSet",
        "name": record_name.rstrip(".") + ".",
        "type": "TXT",
        "ttl": ttl,
        "rrdatas": values,
    }


def txt_addition(current: Optional[RRSet], record_name: str, value: str,
                 ttl: int = RECORD_TTL) -> Optional[ChangeRequest]:
    """
    Compute the change that adds ``value`` to the TXT record set.

    :param dict current: The record set as it exists now, or None if there is none.
    :param str record_name: The record name.
    :param str value: The unquoted TXT value to add.
    :param int ttl: TTL for a newly created record set.
    :returns: The change to submit, or None if the value is already present.
    :rtype: ChangeRequest
    """
    quoted = quote_txt(value)
    if not current:
        return ChangeRequest(additions=[new_txt_rrset(record_name, [quoted], ttl)])

    if quoted in current.get("rrdatas", []):
        return None

    deletion = copy.deepcopy(current)
    addition = copy.deepcopy(current)
    addition["rrdatas"] = list(current.get("rrdatas", [])) + [quoted]
    return ChangeRequest(deletions=[deletion], additions=[addition])


def txt_removal(current: Optional[RRSet], value: str) -> Optional[ChangeRequest]:
    """
    Compute the change that removes ``value`` from the TXT record set.

    When ``value`` is the last one left the record set is deleted outright.

    :returns: The change to submit, or None if the value is already absent.
    :rtype: ChangeRequest
    """
    quoted = quote_txt(value)
    if not current or quoted not in current.get("rrdatas", []):
        return None

    deletion = copy.deepcopy(current)
    remaining = [data for data in current["rrdatas"] if data != quoted]
    if not remaining:
        return ChangeRequest(deletions=[deletion])

    addition = copy.deepcopy(current)
    addition["rrdatas"] = remaining
    return ChangeRequest(deletions=[deletion], additions=[addition])
