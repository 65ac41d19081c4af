"""
Family Graph
============
Validation and linking of marriage and parentage edges between members.

Edges
-----
    husband  <-> wives      stored as members.husband_id on the wife
    father   <-> children   stored as members.father_id on the child
    mother   <-> children   stored as members.mother_id on the child

Every ``resolve_*`` function only reads: it turns raw ids into Member objects
and raises ``ValidationError`` when a referenced member is missing or breaks
a role rule (gender, branch).  Every ``set_*`` function writes both sides of
an edge through the ORM and never commits; ``MemberService`` runs all
resolves first, then all sets, then commits once.
"""
from extensions import db
from models.members import Member, MALE, FEMALE
from utils.errors import ValidationError


# ---------------------------------------------------------------------------
# Id parsing
# ---------------------------------------------------------------------------

def parse_member_id(value, label):
    """Return *value* as a positive int id or raise ``ValidationError``."""
    if isinstance(value, bool):
        raise ValidationError(f'Invalid {label} id: {value!r}')
    if isinstance(value, int):
        member_id = value
    elif isinstance(value, str) and value.strip().isascii() and value.strip().isdecimal():
        member_id = int(value.strip())
    else:
        raise ValidationError(f'Invalid {label} id: {value!r}')
    if member_id <= 0:
        raise ValidationError(f'Invalid {label} id: {value!r}')
    return member_id


def parse_member_ids(values, label):
    """Parse a list (or single value) of ids; duplicates collapse, order kept."""
    if values is None or values == '':
        return []
    if not isinstance(values, (list, tuple)):
        values = [values]
    ids = [parse_member_id(v, label) for v in values]
    return list(dict.fromkeys(ids))


def _reject_self(member_id, ids, label):
    if member_id is not None and member_id in ids:
        raise ValidationError(f'A member cannot be their own {label}')


def _load_by_id(ids):
    if not ids:
        return {}
    return {m.id: m for m in Member.query.filter(Member.id.in_(ids)).all()}


# ---------------------------------------------------------------------------
# Resolution (read-only)
# ---------------------------------------------------------------------------

def resolve_wives(member_id, gender, ids):
    """Resolve wife ids; all must exist and be female, and the member male."""
    if not ids:
        return []
    _reject_self(member_id, ids, 'wife')
    if gender != MALE:
        raise ValidationError('Only male members can have wives')

    found = _load_by_id(ids)
    if len(found) != len(ids):
        raise ValidationError('One or more wives not found')
    if any(wife.gender != FEMALE for wife in found.values()):
        raise ValidationError('All wives must be female')
    return [found[i] for i in ids]


def resolve_husband(member_id, gender, branch, husband_id):
    """Resolve a husband id: must exist, be male and share the family branch."""
    if husband_id is None:
        return None
    _reject_self(member_id, [husband_id], 'husband')
    if gender != FEMALE:
        raise ValidationError('Only female members can have a husband')

    husband = db.session.get(Member, husband_id)
    if husband is None:
        raise ValidationError('Husband not found')
    if husband.gender != MALE:
        raise ValidationError('Husband must be male')
    if husband.family_branch != branch:
        raise ValidationError('Husband must be from the same family branch')
    return husband


def check_kept_spouses_branch(member, gender, branch, resolved):
    """Reject a branch move that would leave a kept marriage across branches.

    Only links the payload does not restate are checked; restated ones were
    already validated against *branch* by the resolvers.
    """
    if gender == FEMALE and 'husband' not in resolved:
        husband = member.husband
        if husband is not None and husband.family_branch != branch:
            raise ValidationError('Husband must be from the same family branch')
    if gender == MALE and 'wives' not in resolved:
        if any(wife.family_branch != branch for wife in member.wives):
            raise ValidationError('Wives must be from the same family branch as their husband')


def resolve_parent(member_id, role, parent_id):
    """Resolve a father (male) or mother (female) id."""
    if parent_id is None:
        return None
    _reject_self(member_id, [parent_id], role)

    parent = db.session.get(Member, parent_id)
    if parent is None:
        raise ValidationError(f'{role.capitalize()} not found')
    expected = MALE if role == 'father' else FEMALE
    if parent.gender != expected:
        raise ValidationError(
            'Father must be male' if role == 'father' else 'Mother must be female'
        )
    return parent


def resolve_children(member_id, ids):
    """Resolve child ids; all must exist."""
    if not ids:
        return []
    _reject_self(member_id, ids, 'child')

    found = _load_by_id(ids)
    if len(found) != len(ids):
        raise ValidationError('One or more children not found')
    return [found[i] for i in ids]


# ---------------------------------------------------------------------------
# Linking (writes, no commit)
# ---------------------------------------------------------------------------

def set_wives(member, wives):
    """Make *wives* exactly the member's wives.

    Dropped wives lose their husband link; new wives are re-pointed at the
    member, which also removes them from any previous husband's list.
    """
    for wife in list(member.wives):
        if wife not in wives:
            wife.husband = None
    for wife in wives:
        wife.husband = member


def set_husband(member, husband):
    """Point the member at *husband* (``None`` detaches)."""
    member.husband = husband


def set_parents(member, father, mother):
    member.father = father
    member.mother = mother


def set_children(member, children):
    """Make *children* exactly the member's children.

    The back-reference slot (father or mother) follows the member's gender.
    """
    slot = 'father' if member.is_male else 'mother'
    for child in member.children:
        if child not in children:
            if child.father is member:
                child.father = None
            if child.mother is member:
                child.mother = None
    for child in children:
        setattr(child, slot, member)


def reseat_after_gender_change(member):
    """Re-align existing links after the member's gender changed.

    Children move to the parent slot matching the new gender when that slot
    is free, otherwise the link is dropped.  Spouse links the new gender
    cannot hold are cleared.
    """
    if member.is_male:
        for child in list(member.children_as_mother):
            child.mother = None
            if child.father is None:
                child.father = member
        member.husband = None
    else:
        for child in list(member.children_as_father):
            child.father = None
            if child.mother is None:
                child.mother = member
        for wife in list(member.wives):
            wife.husband = None


def detach(member):
    """Remove every edge touching *member*, in both directions."""
    for wife in list(member.wives):
        wife.husband = None
    for child in list(member.children_as_father):
        child.father = None
    for child in list(member.children_as_mother):
        child.mother = None
    member.husband = None
    member.father = None
    member.mother = None
