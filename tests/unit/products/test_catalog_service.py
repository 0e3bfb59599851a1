import pytest

from modules.products.exceptions import ProductNotFound
from modules.products.models import ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.services import CatalogService

pytestmark = pytest.mark.unit


@pytest.fixture()
def catalog():
    return CatalogService(repository=ProductDjangoRepository())


class TestCatalogService:
    def test_list_hides_inactive(self, catalog, make_product):
        active = make_product()
        make_product(status=ProductStatus.INACTIVE)

        assert [p.id for p in catalog.list_products()] == [active.id]

    def test_list_filters_cannot_expose_inactive(self, catalog, make_product):
        make_product(name="Termo viejo", status=ProductStatus.INACTIVE)
        make_product(name="Termo")

        products = catalog.list_products({"name__icontains": "termo"})

        assert [p.name for p in products] == ["Termo"]

    def test_get_product(self, catalog, make_product):
        product = make_product()
        assert catalog.get_product(str(product.id)) == product

    @pytest.mark.parametrize("status", [ProductStatus.INACTIVE])
    def test_inactive_product_not_found(self, catalog, make_product, status):
        product = make_product(status=status)
        with pytest.raises(ProductNotFound):
            catalog.get_product(str(product.id))

    def test_malformed_id_not_found(self, catalog):
        with pytest.raises(ProductNotFound):
            catalog.get_product("not-a-uuid")
