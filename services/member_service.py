"""
Member Service
==============
Create, update, delete and query family-tree members while keeping every
marriage and parentage link consistent in both directions.

Atomicity
---------
Every mutation follows the same discipline:

  1. parse and validate the payload (required fields, enum values, dates);
  2. check full-name uniqueness and lineage-head exclusivity;
  3. resolve every referenced member (``services.family_graph.resolve_*``);
  4. apply scalar fields and relationship edges to the session;
  5. commit once.

Any ``AppError`` raised in steps 1-3 leaves the database untouched; a store
error in step 5 rolls the whole request back.  Notifications are emitted
only after the commit and can never undo it.

Payload keys
------------
The service accepts the wire format used by the HTTP layer::

    fname, lname, gender, familyBranch, familyRelationship      (required)
    birthday, deathDate, summary, image, isUser                 (optional)
    husband, wives, parents {father, mother}, children          (relationships)

A relationship key that is present (even empty or null) is reconciled; an
absent key leaves the current links alone.
"""
from datetime import date, datetime

from dateutil import parser as date_parser
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import selectinload

from extensions import db
from models.members import (
    Member, GENDERS, FAMILY_BRANCHES, FAMILY_RELATIONSHIPS, LINEAGE_HEAD, MALE, WIFE,
    normalize_relationship,
)
from services import family_graph
from services.notification_service import NotificationService
from utils.errors import ValidationError, ConflictError, NotFoundError, TransactionError

REQUIRED_FIELDS = ('fname', 'lname', 'gender', 'familyBranch', 'familyRelationship')
REQUIRED_FIELDS_MESSAGE = (
    'First name, last name, gender, familyRelationship and family branch are required.'
)


def _clean_str(value):
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def _parse_date(value, label):
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.isoparse(str(value)).date()
    except (ValueError, OverflowError):
        raise ValidationError(f'Invalid {label}: {value!r}')


def _parse_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('1', 'true', 'yes', 'on')


def _parse_fields(data):
    """Validate required/enum fields and return model column values."""
    if not isinstance(data, dict):
        raise ValidationError('Request body must be an object')

    values = {key: _clean_str(data.get(key)) for key in REQUIRED_FIELDS}
    if any(values[key] is None for key in REQUIRED_FIELDS):
        raise ValidationError(REQUIRED_FIELDS_MESSAGE)

    relationship = normalize_relationship(values['familyRelationship'])
    if values['gender'] not in GENDERS:
        raise ValidationError(f"Invalid gender '{values['gender']}'")
    if values['familyBranch'] not in FAMILY_BRANCHES:
        raise ValidationError(f"Invalid family branch '{values['familyBranch']}'")
    if relationship not in FAMILY_RELATIONSHIPS:
        raise ValidationError(f"Invalid family relationship '{values['familyRelationship']}'")

    fields = {
        'fname': values['fname'],
        'lname': values['lname'],
        'gender': values['gender'],
        'family_branch': values['familyBranch'],
        'family_relationship': relationship,
    }
    if 'birthday' in data:
        fields['birthday'] = _parse_date(data['birthday'], 'birthday')
    if 'deathDate' in data:
        fields['death_date'] = _parse_date(data['deathDate'], 'death date')
    if 'summary' in data:
        fields['summary'] = _clean_str(data['summary'])
    if 'image' in data and _clean_str(data['image']):
        fields['image'] = _clean_str(data['image'])
    if 'isUser' in data:
        fields['is_user'] = _parse_bool(data['isUser'])
    return fields


def _full_name(fields):
    return f"{fields['fname']} {fields['lname']}"


def _parse_relationships(data):
    """Pull the relationship keys that are present into parsed ids."""
    plan = {}
    if 'wives' in data:
        plan['wives'] = family_graph.parse_member_ids(data['wives'], 'wife')
    if 'husband' in data:
        raw = data['husband']
        plan['husband'] = family_graph.parse_member_id(raw, 'husband') if raw not in (None, '') else None
    if 'parents' in data:
        parents = data['parents'] or {}
        if not isinstance(parents, dict):
            raise ValidationError('parents must be an object with father and/or mother')
        plan['parents'] = {
            role: (family_graph.parse_member_id(parents[role], role)
                   if parents.get(role) not in (None, '') else None)
            for role in ('father', 'mother')
        }
    if 'children' in data:
        plan['children'] = family_graph.parse_member_ids(data['children'], 'child')
    return plan


def _resolve_relationships(plan, member_id, fields):
    """Turn parsed ids into members, validating every role rule."""
    resolved = {}
    if 'wives' in plan:
        resolved['wives'] = family_graph.resolve_wives(
            member_id, fields['gender'], plan['wives'])
    # A husband link is only maintained for members holding the wife role
    if 'husband' in plan and fields['family_relationship'] == WIFE:
        resolved['husband'] = family_graph.resolve_husband(
            member_id, fields['gender'], fields['family_branch'], plan['husband'])
    if 'parents' in plan:
        resolved['parents'] = {
            role: family_graph.resolve_parent(member_id, role, parent_id)
            for role, parent_id in plan['parents'].items()
        }
    if 'children' in plan:
        resolved['children'] = family_graph.resolve_children(member_id, plan['children'])
    return resolved


def _apply_relationships(member, resolved):
    if 'wives' in resolved:
        family_graph.set_wives(member, resolved['wives'])
    if 'husband' in resolved:
        family_graph.set_husband(member, resolved['husband'])
    if 'parents' in resolved:
        family_graph.set_parents(member, resolved['parents']['father'],
                                 resolved['parents']['mother'])
    if 'children' in resolved:
        family_graph.set_children(member, resolved['children'])


def _duplicate_name_error(full_name):
    return ConflictError(
        f"يوجد بالفعل عضو باسم '{full_name}'. "
        f"يرجى اسم اضافى لتمييز فريد مثل '{full_name} 1'."
    )


def _is_full_name_violation(exc):
    text = str(exc.orig).lower()
    return 'full_name' in text and ('unique' in text or 'duplicate' in text)


class MemberService:
    """
    Member CRUD with relationship-consistency maintenance.

    All methods raise ``AppError`` subclasses on failure; routes translate
    them into JSON envelopes via the app's error handlers.
    """

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    @staticmethod
    def check_unique_name(full_name, exclude_id=None):
        query = Member.query.filter_by(full_name=full_name)
        if exclude_id is not None:
            query = query.filter(Member.id != exclude_id)
        if query.first() is not None:
            raise _duplicate_name_error(full_name)

    @staticmethod
    def check_lineage_head(fields, exclude_id=None):
        """At most one (male) lineage head per family branch."""
        if fields['family_relationship'] != LINEAGE_HEAD:
            return
        query = Member.query.filter_by(
            family_branch=fields['family_branch'],
            family_relationship=LINEAGE_HEAD,
        )
        if exclude_id is not None:
            query = query.filter(Member.id != exclude_id)
        existing = query.first()
        if existing is not None:
            raise ConflictError(
                f'This family branch already has a male head ({existing.fname} {existing.lname})'
            )
        if fields['gender'] != MALE:
            raise ValidationError(f'Family head ({LINEAGE_HEAD}) must be male')

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @staticmethod
    def create_member(data, sender_id=None, image_path=None):
        """
        Create a member and establish every reciprocal link it names.

        Args:
            data:       payload in wire format (see module docstring).
            sender_id:  id of the acting user, recorded on notifications.
            image_path: stored path of an uploaded image; overrides ``image``.

        Returns:
            Member - the committed member.
        """
        fields = _parse_fields(data)
        full_name = _full_name(fields)

        MemberService.check_unique_name(full_name)
        MemberService.check_lineage_head(fields)

        plan = _parse_relationships(data)
        resolved = _resolve_relationships(plan, None, fields)

        member = Member(full_name=full_name, **fields)
        if image_path:
            member.image = image_path
        elif not member.image:
            member.image = current_app.config['DEFAULT_MEMBER_IMAGE']

        db.session.add(member)
        _apply_relationships(member, resolved)
        MemberService._commit(full_name)

        current_app.logger.info(f'Member created: {member.full_name} (id={member.id})')

        NotificationService.notify_member_event(
            action='create', member_id=member.id, sender_id=sender_id)
        return member

    @staticmethod
    def update_member(member_id, data, sender_id=None, image_path=None):
        """
        Update a member and reconcile relationship deltas.

        For each relationship key present in *data*, stale reciprocal links
        are removed and the new ones written.  Everything commits together.
        """
        member = db.session.get(Member, member_id)
        if member is None:
            raise NotFoundError('Member not found')

        fields = _parse_fields(data)
        full_name = _full_name(fields)

        MemberService.check_unique_name(full_name, exclude_id=member.id)
        MemberService.check_lineage_head(fields, exclude_id=member.id)

        plan = _parse_relationships(data)
        resolved = _resolve_relationships(plan, member.id, fields)
        if fields['family_branch'] != member.family_branch:
            family_graph.check_kept_spouses_branch(
                member, fields['gender'], fields['family_branch'], resolved)

        gender_changed = fields['gender'] != member.gender

        for key, value in fields.items():
            setattr(member, key, value)
        member.full_name = full_name
        if image_path:
            member.image = image_path

        if gender_changed:
            family_graph.reseat_after_gender_change(member)
        _apply_relationships(member, resolved)
        MemberService._commit(full_name)

        current_app.logger.info(f'Member updated: {member.full_name} (id={member.id})')

        NotificationService.notify_member_event(
            action='update', member_id=member.id, sender_id=sender_id)
        return member

    @staticmethod
    def delete_member(member_id, sender_id=None):
        """
        Delete a member and its linked user account in one transaction.

        Links held by other members (wives' husband, children's father or
        mother) are cleared in the same transaction.

        Returns:
            bool - True if a linked user account was deleted as well.
        """
        member = db.session.get(Member, member_id)
        if member is None:
            raise NotFoundError('Member not found')

        had_user = member.user is not None
        try:
            if had_user:
                MemberService._delete_linked_user(member)
            family_graph.detach(member)
            db.session.delete(member)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f'Failed to delete member {member_id}: {exc}')
            raise TransactionError('Failed to delete member; no changes were made') from exc

        current_app.logger.info(
            f'Member deleted: id={member_id}' + (' (with linked user)' if had_user else ''))

        NotificationService.notify_member_event(
            action='delete', member_id=member_id, sender_id=sender_id)
        return had_user

    @staticmethod
    def _delete_linked_user(member):
        user = member.user
        member.user = None
        db.session.delete(user)
        db.session.flush()

    @staticmethod
    def _commit(full_name):
        try:
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            # Concurrent insert of the same full name
            if _is_full_name_violation(exc):
                raise _duplicate_name_error(full_name) from exc
            current_app.logger.error(f'Integrity error saving member {full_name}: {exc}')
            raise TransactionError('Failed to save member; no changes were made') from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error(f'Failed to save member {full_name}: {exc}')
            raise TransactionError('Failed to save member; no changes were made') from exc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @staticmethod
    def _populated_query():
        return Member.query.options(
            selectinload(Member.husband),
            selectinload(Member.wives),
            selectinload(Member.father),
            selectinload(Member.mother),
            selectinload(Member.children_as_father),
            selectinload(Member.children_as_mother),
            selectinload(Member.user),
        )

    @staticmethod
    def get_member(member_id):
        member = MemberService._populated_query().filter(Member.id == member_id).first()
        if member is None:
            raise NotFoundError('Member not found')
        return member

    @staticmethod
    def list_members(page=1, limit=None, family_branch=None, family_relationship=None):
        """
        Return a Flask-SQLAlchemy ``Pagination`` of members.

        ``page`` below 1 falls back to 1; ``limit`` falls back to
        MEMBERS_PAGE_SIZE and is capped at MEMBERS_MAX_PAGE_SIZE.
        """
        config = current_app.config
        if not page or page < 1:
            page = 1
        if not limit or limit < 1:
            limit = config['MEMBERS_PAGE_SIZE']
        limit = min(limit, config['MEMBERS_MAX_PAGE_SIZE'])

        query = MemberService._populated_query()
        if family_branch:
            query = query.filter(Member.family_branch == family_branch)
        if family_relationship:
            query = query.filter(
                Member.family_relationship == normalize_relationship(family_relationship))

        return query.order_by(Member.id).paginate(page=page, per_page=limit, error_out=False)
