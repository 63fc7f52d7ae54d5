import jwt
from jwt import PyJWKClient
from functools import wraps
from flask import request, jsonify, g, current_app

# Module-level JWKS client, fetched once per process
_jwks_client = None


def _get_jwks_client():
    global _jwks_client
    if _jwks_client is None:
        _jwks_client = PyJWKClient(current_app.config['AUTH_JWKS_URL'], cache_keys=True)
    return _jwks_client


def _decode_token(token):
    """Decode and verify a bearer JWT using the configured JWKS endpoint."""
    client = _get_jwks_client()
    signing_key = client.get_signing_key_from_jwt(token)
    return jwt.decode(
        token,
        signing_key.key,
        algorithms=['ES256', 'RS256'],
        audience=current_app.config['AUTH_AUDIENCE'],
    )


def require_auth(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None
        auth_header = request.headers.get('Authorization', '')

        if auth_header.startswith('Bearer '):
            token = auth_header[7:]

        if not token:
            return jsonify({'error': 'Missing authorization token'}), 401

        try:
            payload = _decode_token(token)
        except jwt.ExpiredSignatureError:
            return jsonify({'error': 'Token expired'}), 401
        except jwt.InvalidTokenError:
            return jsonify({'error': 'Invalid token'}), 401

        user_id = payload.get('sub')
        if not user_id:
            return jsonify({'error': 'Invalid token payload'}), 401

        g.user_id = user_id
        g.jwt_payload = payload

        return f(*args, **kwargs)
    return decorated
