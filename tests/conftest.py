import pytest

from geoschema.fingerprint import ProductInput
from geoschema.models import Shop
from geoschema.tasks import runtime

SHOP = 'test-shop.myshopify.com'
BRAND_VOICE = 'Professional, luxury-focused, emphasizing craftsmanship'


def make_schema(product):
    return {
        '@context': 'https://schema.org',
        '@type': 'Product',
        'name': product.title,
        'description': product.description,
        'brand': {'@type': 'Brand', 'name': product.vendor},
    }


class FakeGenerator:
    """Stands in for the generation API; records every call."""

    def __init__(self, error=None, payload=None):
        self.calls = []
        self.error = error
        self.payload = payload

    def generate(self, product, brand_voice):
        self.calls.append((product, brand_voice))
        if self.error is not None:
            raise self.error
        if self.payload is not None:
            return self.payload
        return make_schema(product)


@pytest.fixture(autouse=True)
def override_settings(settings):
    settings.DEFAULT_CREDITS = 10
    settings.GEOSCHEMA_DATABASE = 'default'
    settings.OPENAI_API_BASE_URL = 'https://api.fake-llm.test/v1'
    settings.OPENAI_API_KEY = 'sk-test-key'
    settings.OPENAI_MODEL = 'gpt-4o-mini'
    settings.OPENAI_TIMEOUT = 5.0
    settings.OPENAI_RATE_LIMIT = 5
    settings.OPENAI_MAX_RETRIES = 3
    runtime.start()
    yield
    runtime.stop()


@pytest.fixture()
def product():
    return ProductInput(
        product_id='gid://shopify/Product/1',
        title='Handcrafted Leather Wallet',
        description='Premium full-grain leather wallet with RFID blocking.',
        vendor='Artisan Goods Co.',
        price='49.00',
        sku='WAL-001',
    )


@pytest.fixture()
def onboarded_shop(db):
    def _make(domain=SHOP, credits=10, brand_voice=BRAND_VOICE):
        return Shop.objects.create(
            domain=domain, credits=credits, brand_voice=brand_voice, is_onboarded=True,
        )
    return _make
