"""
Member model - one person in the family tree.

Marriage and parentage edges are stored once, on the "lower" side:

    husband  <-> wives      members.husband_id on the wife
    father   <-> children   members.father_id  on the child
    mother   <-> children   members.mother_id  on the child

The reverse collections (``wives``, ``children_as_father``,
``children_as_mother``) are SQLAlchemy relationships over the same columns,
so both directions of a link always agree.  Validation of who may be linked
to whom lives in ``services.family_graph``.
"""
from datetime import datetime, timezone

from extensions import db


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ── Enumerations ──────────────────────────────────────────────────────────────

MALE = 'ذكر'
FEMALE = 'أنثى'
GENDERS = (MALE, FEMALE)

FAMILY_BRANCHES = (
    'الفرع الاول',
    'الفرع الثاني',
    'الفرع الثالث',
    'الفرع الرابع',
    'الفرع الخامس',
)

SON = 'ابن'
DAUGHTER = 'ابنة'
WIFE = 'زوجة'
HUSBAND = 'زوج'
GRANDSON = 'حفيد'
GRANDDAUGHTER = 'حفيدة'
LINEAGE_HEAD = 'الجدالأعلى'
OTHER = 'أخرى'

FAMILY_RELATIONSHIPS = (
    SON, DAUGHTER, WIFE, HUSBAND, GRANDSON, GRANDDAUGHTER, LINEAGE_HEAD, OTHER,
)

# Alternative spellings accepted on input
RELATIONSHIP_ALIASES = {
    'الجد الأعلى': LINEAGE_HEAD,
}


def normalize_relationship(value):
    """Map an accepted alias onto its canonical relationship value."""
    if value is None:
        return None
    value = value.strip()
    return RELATIONSHIP_ALIASES.get(value, value)


class Member(db.Model):
    """A genealogical entity linked to others by marriage and parentage."""
    __tablename__ = 'members'

    id = db.Column(db.Integer, primary_key=True)
    fname = db.Column(db.String(100), nullable=False)
    lname = db.Column(db.String(100), nullable=False)
    # "{fname} {lname}" - must be unique across the tree
    full_name = db.Column(db.String(201), unique=True, nullable=False, index=True)
    gender = db.Column(db.String(10), nullable=False)
    family_branch = db.Column(db.String(30), nullable=False, index=True)
    family_relationship = db.Column(db.String(30), nullable=False, index=True)

    birthday = db.Column(db.Date)
    death_date = db.Column(db.Date)
    summary = db.Column(db.Text)
    image = db.Column(db.String(500))
    is_user = db.Column(db.Boolean, default=False, nullable=False)

    # Edges (see module docstring)
    husband_id = db.Column(db.Integer, db.ForeignKey('members.id', ondelete='SET NULL'), index=True)
    father_id = db.Column(db.Integer, db.ForeignKey('members.id', ondelete='SET NULL'), index=True)
    mother_id = db.Column(db.Integer, db.ForeignKey('members.id', ondelete='SET NULL'), index=True)

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    # Relationships
    husband = db.relationship('Member', remote_side=[id], foreign_keys=[husband_id],
                              back_populates='wives')
    wives = db.relationship('Member', foreign_keys=[husband_id], back_populates='husband',
                            order_by='Member.id')

    father = db.relationship('Member', remote_side=[id], foreign_keys=[father_id],
                             back_populates='children_as_father')
    children_as_father = db.relationship('Member', foreign_keys=[father_id],
                                         back_populates='father', order_by='Member.id')

    mother = db.relationship('Member', remote_side=[id], foreign_keys=[mother_id],
                             back_populates='children_as_mother')
    children_as_mother = db.relationship('Member', foreign_keys=[mother_id],
                                         back_populates='mother', order_by='Member.id')

    # Linked user account (users.member_id)
    user = db.relationship('User', back_populates='member', uselist=False)

    @property
    def is_male(self):
        return self.gender == MALE

    @property
    def is_female(self):
        return self.gender == FEMALE

    @property
    def is_lineage_head(self):
        return self.family_relationship == LINEAGE_HEAD

    @property
    def children(self):
        """Every member that names this member as father or mother."""
        seen = {}
        for child in list(self.children_as_father) + list(self.children_as_mother):
            seen.setdefault(child.id if child.id is not None else id(child), child)
        return list(seen.values())

    @property
    def user_id(self):
        return self.user.id if self.user is not None else None

    def to_summary(self):
        """Flat representation with relationship fields as ids."""
        return {
            'id': self.id,
            'fname': self.fname,
            'lname': self.lname,
            'fullName': self.full_name,
            'gender': self.gender,
            'familyBranch': self.family_branch,
            'familyRelationship': self.family_relationship,
            'birthday': self.birthday.isoformat() if self.birthday else None,
            'deathDate': self.death_date.isoformat() if self.death_date else None,
            'summary': self.summary,
            'image': self.image,
            'isUser': self.is_user,
            'userId': self.user_id,
            'husband': self.husband_id,
            'wives': [w.id for w in self.wives],
            'parents': {'father': self.father_id, 'mother': self.mother_id},
            'children': [c.id for c in self.children],
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_dict(self, populate=False):
        """Serialise the member.

        With ``populate=True`` every relationship field is resolved to the
        referenced member's summary and the linked user is embedded.
        """
        data = self.to_summary()
        if not populate:
            return data

        data['husband'] = self.husband.to_summary() if self.husband else None
        data['wives'] = [w.to_summary() for w in self.wives]
        data['parents'] = {
            'father': self.father.to_summary() if self.father else None,
            'mother': self.mother.to_summary() if self.mother else None,
        }
        data['children'] = [c.to_summary() for c in self.children]
        data['user'] = self.user.to_dict() if self.user else None
        return data

    def __repr__(self):
        return f'<Member {self.full_name}>'
