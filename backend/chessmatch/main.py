from flask import Blueprint, request, jsonify
from sqlalchemy.exc import IntegrityError
from chessmatch import db
from chessmatch.errors import ConflictError, ValidationError
from chessmatch.models import User

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the chessmatch server!'})

@main.route('/users', methods=['POST'])
def add_user():
    data = request.get_json(silent=True) or {}
    username = (data.get('username') or '').strip()
    if not username:
        raise ValidationError('Missing username')

    if User.query.filter_by(username=username).first():
        raise ConflictError('Username already exists')

    user = User(username=username)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('Username already exists')

    return jsonify(user.to_dict()), 201
