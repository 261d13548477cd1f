from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt_identity
from sqlalchemy import select, delete
from repairdesk.models.authz import User, Role, UserRole
from repairdesk import get_db
from repairdesk.services.policy import compute_effective_permissions
from repairdesk.decorators.auth import require_permissions
from repairdesk.utils.listing import list_response
from repairdesk.utils.sorting import apply_multi_sort

auth_bp = Blueprint('auth', __name__)


def _user_json(u: User):
    return {
        'id': u.id,
        'username': u.username,
        'email': u.email,
        'first_name': u.first_name,
        'last_name': u.last_name,
        'display_name': u.display_name,
        'is_active': u.is_active,
        'roles': sorted(ur.role.name for ur in u.user_roles),
    }


@auth_bp.post('/login')
def login():
    data = request.json or {}
    username = data.get('username'); password = data.get('password')
    if not username or not password:
        abort(400, description='username & password required')
    session = get_db()
    user = session.execute(select(User).where(User.username==username)).scalar_one_or_none()
    if not user or not user.is_active or not user.verify_password(password):
        abort(401, description='invalid credentials')
    eff = compute_effective_permissions(user.id)
    claims = {
        'roles': eff['roles'],
        'perms': eff['perms'],
        'username': user.username,
        'display_name': user.display_name,
    }
    # JWT identity must be a string (flask-jwt-extended v4 requirement)
    token = create_access_token(identity=str(user.id), additional_claims=claims)
    return {'access_token': token}


@auth_bp.get('/me')
@jwt_required()
def me():
    user_id = int(get_jwt_identity())
    user = get_db().get(User, user_id)
    if not user:
        abort(404)
    eff = compute_effective_permissions(user.id)
    body = _user_json(user)
    body.update({'role_ids': eff['roles'], 'perms': eff['perms']})
    return body


@auth_bp.route('/users', methods=['GET', 'HEAD'])
@require_permissions('ADMIN.USER.MANAGE')
def list_users():
    q = get_db().query(User)
    q = apply_multi_sort(q, request.args.get('sort'), {'username': User.username, 'id': User.id}, User.id)
    return list_response(q, _user_json)


def _resolve_roles(session, names):
    if not isinstance(names, list):
        abort(400, description='roles must be a list of role names')
    roles = session.execute(select(Role).where(Role.name.in_(names))).scalars().all() if names else []
    missing = set(names) - {r.name for r in roles}
    if missing:
        abort(400, description=f'Unknown roles: {sorted(missing)}')
    return roles


@auth_bp.post('/users')
@require_permissions('ADMIN.USER.MANAGE')
def create_user():
    session = get_db()
    data = request.json or {}
    username = data.get('username'); password = data.get('password')
    if not username or not password:
        abort(400, description='username & password required')
    if session.execute(select(User.id).where(User.username==username)).first():
        abort(409, description=f'username {username} already exists')
    roles = _resolve_roles(session, data.get('roles') or [])
    user = User(username=username, email=data.get('email'), first_name=data.get('first_name'),
                last_name=data.get('last_name'), is_active=True)
    user.set_password(password)
    session.add(user)
    session.flush()
    for r in roles:
        session.add(UserRole(user_id=user.id, role_id=r.id))
    session.commit()
    session.refresh(user)
    return _user_json(user), 201


@auth_bp.put('/users/<int:user_id>/roles')
@require_permissions('ADMIN.USER.MANAGE')
def set_user_roles(user_id: int):
    session = get_db()
    user = session.get(User, user_id)
    if not user:
        abort(404)
    roles = _resolve_roles(session, (request.json or {}).get('roles') or [])
    # Replace direct assignments
    session.execute(delete(UserRole).where(UserRole.user_id==user.id))
    for r in roles:
        session.add(UserRole(user_id=user.id, role_id=r.id))
    session.commit()
    session.refresh(user)
    return _user_json(user)
