from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required
from sketchrounds.models import User

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'sketchrounds phase timer service'})

@main.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(username=data.get('username')).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({'message': 'Logged in successfully.', 'user': user.to_dict()})
    return jsonify({'error': 'Invalid username or password'}), 401

@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'Logged out successfully.'})
