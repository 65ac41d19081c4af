"""
Members blueprint routes.

  POST   /members          – create a member            (member.create)
  GET    /members          – paginated list + filters    (member.view)
  GET    /members/<id>     – one member, relations populated (member.view)
  PUT    /members/<id>     – update + reconcile relations (member.update)
  DELETE /members/<id>     – delete member and linked user (member.delete)

Bodies are JSON, or multipart/form-data when an ``image`` file is uploaded.
Every response is a ``{success, message, data}`` envelope.
"""
from flask import jsonify, request
from flask_login import current_user

from blueprints.members import members_bp
from services.member_service import MemberService
from utils.errors import AppError, ValidationError
from utils.permissions import permission_required, ENTITY_MEMBER
from utils.uploads import save_member_image, discard_upload

SCALAR_FORM_KEYS = (
    'fname', 'lname', 'gender', 'familyBranch', 'familyRelationship',
    'birthday', 'deathDate', 'summary', 'image', 'isUser',
)


# ── Helpers ───────────────────────────────────────────────────────────────────

def _form_payload(form):
    """Rebuild the JSON payload shape from multipart form fields."""
    data = {key: form.get(key) for key in SCALAR_FORM_KEYS if key in form}
    for key in ('wives', 'children'):
        if key in form:
            data[key] = [value for value in form.getlist(key) if value]
    if 'husband' in form:
        data['husband'] = form.get('husband') or None

    parent_keys = {
        'father': ('parents[father]', 'parents.father'),
        'mother': ('parents[mother]', 'parents.mother'),
    }
    if any(key in form for keys in parent_keys.values() for key in keys) or 'parents' in form:
        data['parents'] = {
            role: next((form.get(k) for k in keys if form.get(k)), None)
            for role, keys in parent_keys.items()
        }
    return data


def _read_payload():
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError('Request body must be a JSON object')
        return data
    return _form_payload(request.form)


def _run_with_upload(operation):
    """Save an uploaded image, run *operation(image_path)*, clean up on failure."""
    image_path = save_member_image(request.files.get('image'))
    try:
        return operation(image_path)
    except AppError:
        discard_upload(image_path)
        raise


# ── Routes ────────────────────────────────────────────────────────────────────

@members_bp.route('', methods=['POST'])
@permission_required(ENTITY_MEMBER, 'create')
def create_member():
    data = _read_payload()
    member = _run_with_upload(
        lambda image_path: MemberService.create_member(
            data, sender_id=current_user.id, image_path=image_path)
    )
    return jsonify({
        'success': True,
        'message': 'Member created successfully',
        'data': member.to_dict(populate=True),
    }), 201


@members_bp.route('', methods=['GET'])
@permission_required(ENTITY_MEMBER, 'view')
def list_members():
    pagination = MemberService.list_members(
        page=request.args.get('page', 1, type=int),
        limit=request.args.get('limit', type=int),
        family_branch=request.args.get('familyBranch'),
        family_relationship=request.args.get('familyRelationship'),
    )
    members = pagination.items
    return jsonify({
        'success': True,
        'message': 'Members retrieved successfully',
        'data': [m.to_dict(populate=True) for m in members],
        'pagination': {
            'totalMembers': pagination.total,
            'totalPages': pagination.pages,
            'currentPage': pagination.page,
            'pageSize': len(members),
        },
    })


@members_bp.route('/<int:member_id>', methods=['GET'])
@permission_required(ENTITY_MEMBER, 'view')
def get_member(member_id):
    member = MemberService.get_member(member_id)
    return jsonify({
        'success': True,
        'message': 'Member retrieved successfully',
        'data': member.to_dict(populate=True),
    })


@members_bp.route('/<int:member_id>', methods=['PUT'])
@permission_required(ENTITY_MEMBER, 'update')
def update_member(member_id):
    data = _read_payload()
    member = _run_with_upload(
        lambda image_path: MemberService.update_member(
            member_id, data, sender_id=current_user.id, image_path=image_path)
    )
    return jsonify({
        'success': True,
        'message': 'Member updated successfully',
        'data': MemberService.get_member(member.id).to_dict(populate=True),
    })


@members_bp.route('/<int:member_id>', methods=['DELETE'])
@permission_required(ENTITY_MEMBER, 'delete')
def delete_member(member_id):
    deleted_user = MemberService.delete_member(member_id, sender_id=current_user.id)
    return jsonify({
        'success': True,
        'message': ('Member and user deleted successfully' if deleted_user
                    else 'Member deleted successfully'),
        'data': None,
    })
