from flask import jsonify

from versemarks.errors import InvalidIdentity, NotFound, StorageFailure, UnpersistedLabel


def register_blueprints(app):
    from versemarks.api.bookmarks import bp as bookmarks_bp
    from versemarks.api.labels import bp as labels_bp

    app.register_blueprint(bookmarks_bp)
    app.register_blueprint(labels_bp)


def _error_response(e, status):
    return jsonify({
        'error': e.detail,
        'error_code': e.error_code,
    }), status


def register_error_handlers(app):
    @app.errorhandler(InvalidIdentity)
    @app.errorhandler(UnpersistedLabel)
    def contract_violation(e):
        return _error_response(e, 400)

    @app.errorhandler(NotFound)
    def not_found(e):
        return _error_response(e, 404)

    @app.errorhandler(StorageFailure)
    def storage_failure(e):
        app.logger.error('Storage failure: %s', e.detail)
        return jsonify({
            'error': 'The bookmark store is unavailable.',
            'error_code': e.error_code,
        }), 503
