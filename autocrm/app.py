import sys
import os
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask, request, jsonify

# Structured logging
from core.utils.logging_config import setup_logging, get_logger
logger = setup_logging(level=os.environ.get('LOG_LEVEL', 'INFO'))
app_logger = get_logger('autocrm.app')
app_logger.info('AutoCRM app module loading...')
from database import ping_db, init_db


app = Flask(__name__)

# ============== Blueprint Registrations ==============

from sales_bot import sales_bot_bp
app.register_blueprint(sales_bot_bp)

app_logger.info(f'AutoCRM startup complete, {len(app.url_map._rules)} routes registered')

# ============== Global Error Handlers ==============

@app.errorhandler(404)
def handle_404(e):
    return jsonify({'success': False, 'error': 'Not found'}), 404

@app.errorhandler(405)
def handle_405(e):
    return jsonify({'success': False, 'error': 'Method not allowed'}), 405

@app.errorhandler(500)
def handle_500(e):
    app_logger.exception('Unhandled 500 error')
    return jsonify({'success': False, 'error': 'An internal error occurred'}), 500

# ============== Startup ==============

if not os.environ.get('TESTING'):
    try:
        init_db()
    except Exception as e:
        app_logger.error(f'Database initialization failed: {e}')

    from sales_bot.config import get_follow_up_config
    if get_follow_up_config().SCHEDULER_ENABLED:
        try:
            from tasks.followups import start_scheduler
            start_scheduler()
        except Exception as e:
            app_logger.warning(f'Failed to start background scheduler: {e}')


@app.after_request
def add_cache_headers(response):
    if request.path == '/health':
        response.headers['Cache-Control'] = 'no-cache'
    return response


@app.route('/health')
def health_check():
    """Health check for the orchestrator. Only checks DB connectivity."""
    checks = {}

    try:
        checks['database'] = ping_db()
    except Exception as e:
        checks['database'] = False
        app_logger.error(f'Health check - database failed: {e}')

    status = 'healthy' if checks.get('database') else 'unhealthy'
    http_code = 200 if status == 'healthy' else 503

    return jsonify({
        'status': status,
        'checks': checks,
        'service': 'autocrm',
    }), http_code


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=os.environ.get('FLASK_DEBUG', 'false').lower() == 'true')
