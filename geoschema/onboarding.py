import logging

from .errors import TenantNotOnboarded
from .models import Shop

logger = logging.getLogger(__name__)

BRAND_TONES = {
    'minimalist': {
        'label': 'Minimalist (Facts Only)',
        'prompt': (
            'Be extremely concise. Focus only on factual specifications. '
            'No marketing language. Just the facts.'
        ),
    },
    'storyteller': {
        'label': 'Storyteller (Warm)',
        'prompt': (
            'Be warm and engaging. Tell the story behind the product. '
            'Use inviting language that connects emotionally.'
        ),
    },
    'enterprise': {
        'label': 'Enterprise (Professional)',
        'prompt': (
            'Be professional and authoritative. Emphasize quality, reliability, '
            'and business value. Formal tone.'
        ),
    },
}


def resolve_brand_voice(tone: str) -> str:
    try:
        return BRAND_TONES[tone]['prompt']
    except KeyError:
        raise ValueError(f"Unknown brand tone {tone!r}; choose one of {sorted(BRAND_TONES)}.") from None


def approve_onboarding(shop: str, brand_voice: str, using: str = 'default') -> Shop:
    """
    Lock in the shop's brand voice and open it for product processing.

    This is the only place the brand voice changes; calling it again is a
    re-onboarding.
    """
    if not brand_voice or not brand_voice.strip():
        raise ValueError('Brand voice must not be empty.')

    state, created = Shop.objects.using(using).update_or_create(
        domain=shop,
        defaults={'brand_voice': brand_voice, 'is_onboarded': True},
    )
    logger.info("Shop %s %s with brand voice %r.", shop, 'onboarded' if created else 're-onboarded', brand_voice[:40])
    return state


def get_onboarded_shop(shop: str, using: str = 'default') -> Shop:
    state = Shop.objects.using(using).filter(domain=shop).first()
    if state is None or not state.is_onboarded:
        raise TenantNotOnboarded(shop)
    return state
