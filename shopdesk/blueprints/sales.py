"""Sales history blueprint."""
from datetime import datetime
from flask import Blueprint, request, jsonify, current_app, Response

from shopdesk.database import get_session
from shopdesk.exceptions import ValidationError
from shopdesk.middleware import require_login
from shopdesk.services import sales_service
from shopdesk.utils.formatters import money_mx

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


@sales_bp.route('/')
@require_login
def list_sales() -> Response:
    limit = request.args.get('limit', default=current_app.config.get('SALES_HISTORY_LIMIT', 50), type=int)
    sales = sales_service.list_sales(get_session(), limit=limit)
    return jsonify({'status': 'ok', 'sales': [sale.to_dict() for sale in sales]})


@sales_bp.route('/<int:sale_id>')
@require_login
def detail_sale(sale_id: int) -> Response:
    sale = sales_service.get_sale(get_session(), sale_id)
    return jsonify({'status': 'ok', 'sale': sale.to_dict()})


@sales_bp.route('/number/<sale_number>')
@require_login
def detail_sale_by_number(sale_number: str) -> Response:
    sale = sales_service.get_sale_by_number(get_session(), sale_number)
    return jsonify({'status': 'ok', 'sale': sale.to_dict()})


@sales_bp.route('/summary')
@require_login
def daily_summary() -> Response:
    """Cash register closure for ?date=YYYY-MM-DD (defaults to today)."""
    raw_date = request.args.get('date')
    day = None
    if raw_date:
        try:
            day = datetime.strptime(raw_date, '%Y-%m-%d').date()
        except ValueError:
            raise ValidationError('Fecha inválida, use AAAA-MM-DD')

    summary = sales_service.daily_summary(get_session(), day)

    body = {
        'status': 'ok',
        'date': summary['date'],
        'sales_count': summary['sales_count'],
        'total_amount': str(summary['total_amount']),
        'discount_total': str(summary['discount_total']),
        'mixed_total': str(summary['mixed_total']),
        'average_ticket': str(summary['average_ticket']),
        'by_method': {k: str(v) for k, v in summary['by_method'].items()},
        'display': {
            'total_amount': money_mx(summary['total_amount']),
            'average_ticket': money_mx(summary['average_ticket']),
        },
    }
    return jsonify(body)
