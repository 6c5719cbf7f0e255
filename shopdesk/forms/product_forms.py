"""
Product forms for catalog maintenance.

Flask-WTF reads JSON bodies as form data, so the same form validates both
HTML form posts and API payloads.
"""
from flask_wtf import FlaskForm
from wtforms import DecimalField, IntegerField, SelectField, StringField, TextAreaField
from wtforms.validators import DataRequired, NumberRange, Length, Optional

from shopdesk.models import ProductCategory, ProductStatus


class ProductForm(FlaskForm):
    """Create/replace a product."""

    name = StringField(
        'Nombre',
        validators=[DataRequired(message='El nombre es requerido'), Length(max=200)]
    )

    category = SelectField(
        'Categoría',
        choices=[
            (ProductCategory.DEVICE.value, 'Equipo'),
            (ProductCategory.ACCESSORY.value, 'Accesorio'),
            (ProductCategory.PART.value, 'Refacción'),
        ],
        validators=[DataRequired(message='La categoría es requerida')]
    )

    subcategory = StringField('Subcategoría', validators=[Optional(), Length(max=100)])
    brand = StringField('Marca', validators=[Optional(), Length(max=100)], default='')
    model = StringField('Modelo', validators=[Optional(), Length(max=100)])

    sku = StringField(
        'SKU',
        validators=[DataRequired(message='El SKU es requerido'), Length(max=64)]
    )
    barcode = StringField('Código de barras', validators=[Optional(), Length(max=64)])

    price = DecimalField(
        'Precio',
        validators=[
            DataRequired(message='El precio es requerido'),
            NumberRange(min=0.01, message='El precio debe ser mayor a 0')
        ],
        places=2
    )
    cost = DecimalField(
        'Costo',
        validators=[Optional(), NumberRange(min=0, message='El costo no puede ser negativo')],
        places=2,
        default=0
    )

    stock = IntegerField(
        'Stock inicial',
        validators=[Optional(), NumberRange(min=0, message='El stock no puede ser negativo')],
        default=0
    )
    min_stock = IntegerField(
        'Stock mínimo',
        validators=[Optional(), NumberRange(min=0, message='El stock mínimo no puede ser negativo')]
    )

    status = SelectField(
        'Estado',
        choices=[
            (ProductStatus.ACTIVE.value, 'Activo'),
            (ProductStatus.INACTIVE.value, 'Inactivo'),
            (ProductStatus.DISCONTINUED.value, 'Descontinuado'),
        ],
        default=ProductStatus.ACTIVE.value
    )

    image_url = StringField('Imagen', validators=[Optional(), Length(max=500)])
    description = TextAreaField('Descripción', validators=[Optional()])

    def to_data(self):
        """Cleaned payload for the catalog service."""
        data = {name: field.data for name, field in self._fields.items() if name != 'csrf_token'}
        if data.get('brand') is None:
            data['brand'] = ''
        if data.get('cost') is None:
            data['cost'] = 0
        # Left out so create applies LOW_STOCK_THRESHOLD and update keeps the current value
        if data.get('min_stock') is None:
            data.pop('min_stock', None)
        return data
