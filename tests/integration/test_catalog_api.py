"""
Integration tests for catalog maintenance endpoints.
"""

from shopdesk.models import InventoryMovement, Product


class TestProductEndpoints:
    """Test product listing and maintenance."""

    def test_list_products(self, authenticated_client, phone, case):
        response = authenticated_client.get('/catalog/products')

        data = response.get_json()
        assert response.status_code == 200
        assert data['count'] == 2
        assert data['brands'] == ['Genérica', 'Samsung']

    def test_list_with_filters(self, authenticated_client, phone, case):
        response = authenticated_client.get('/catalog/products?category=device')
        assert [p['sku'] for p in response.get_json()['products']] == ['SAM-A15']

        response = authenticated_client.get('/catalog/products?search=funda')
        assert [p['sku'] for p in response.get_json()['products']] == ['FUN-A15']

    def test_list_invalid_filter(self, authenticated_client):
        response = authenticated_client.get('/catalog/products?stock_status=plenty')
        assert response.status_code == 400

    def test_create_product(self, authenticated_client, session):
        response = authenticated_client.post('/catalog/products', json={
            'name': 'Mica cristal templado',
            'category': 'accessory',
            'brand': 'Genérica',
            'sku': 'MICA-001',
            'price': '149.00',
            'cost': '35.00',
            'stock': 20,
        })

        assert response.status_code == 201
        product = response.get_json()['product']
        assert product['price'] == '149.00'
        assert product['stock'] == 20
        assert product['min_stock'] == 5
        assert session.query(InventoryMovement).filter_by(product_id=product['id']).count() == 1

    def test_create_product_invalid(self, authenticated_client):
        response = authenticated_client.post('/catalog/products', json={
            'name': '',
            'category': 'food',
            'sku': 'X',
            'price': '0',
        })

        assert response.status_code == 400
        errors = response.get_json()['errors']
        assert 'name' in errors
        assert 'category' in errors
        assert 'price' in errors

    def test_create_duplicate_sku(self, authenticated_client, case):
        response = authenticated_client.post('/catalog/products', json={
            'name': 'Otra funda',
            'category': 'accessory',
            'sku': 'FUN-A15',
            'price': '99.00',
        })
        assert response.status_code == 400

    def test_update_ignores_stock(self, authenticated_client, session, case):
        case_id = case.id
        response = authenticated_client.put(f'/catalog/products/{case_id}', json={
            'name': 'Funda silicón A15 azul',
            'category': 'accessory',
            'sku': 'FUN-A15',
            'price': '219.90',
            'stock': 999,
        })

        assert response.status_code == 200
        product = response.get_json()['product']
        assert product['name'] == 'Funda silicón A15 azul'
        assert product['price'] == '219.90'
        assert session.get(Product, case_id).stock == 10

    def test_get_and_delete(self, authenticated_client, session, case):
        case_id = case.id
        assert authenticated_client.get(f'/catalog/products/{case_id}').status_code == 200

        response = authenticated_client.delete(f'/catalog/products/{case_id}')

        assert response.status_code == 200
        assert authenticated_client.get(f'/catalog/products/{case_id}').status_code == 404

    def test_alerts(self, authenticated_client, session, phone):
        session.get(Product, phone.id).stock = 1
        session.commit()

        response = authenticated_client.get('/catalog/alerts')

        data = response.get_json()
        assert [p['sku'] for p in data['low_stock']] == ['SAM-A15']
        assert data['out_of_stock'] == []

    def test_refresh(self, authenticated_client, phone, case):
        response = authenticated_client.post('/catalog/refresh')
        assert response.get_json()['count'] == 2


class TestMovementEndpoints:
    """Test the stock ledger endpoints."""

    def test_record_and_list(self, authenticated_client, session, case):
        case_id = case.id
        response = authenticated_client.post('/catalog/movements', json={
            'product_id': case_id,
            'movement_type': 'entry',
            'quantity': 5,
            'unit_cost': '80.00',
            'reference_type': 'purchase',
        })

        assert response.status_code == 201
        assert response.get_json()['movement']['new_stock'] == 15
        assert session.get(Product, case_id).stock == 15

        response = authenticated_client.get(f'/catalog/movements?product_id={case_id}')
        movements = response.get_json()['movements']
        assert len(movements) == 1
        assert movements[0]['created_by'] == 'Caja Uno'

    def test_exit_conflict(self, authenticated_client, phone):
        response = authenticated_client.post('/catalog/movements', json={
            'product_id': phone.id,
            'movement_type': 'exit',
            'quantity': 10,
        })
        assert response.status_code == 409

    def test_missing_fields(self, authenticated_client):
        response = authenticated_client.post('/catalog/movements', json={'quantity': 1})
        assert response.status_code == 400
