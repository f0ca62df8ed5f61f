import json
from typing import Dict, Any
from redis import Redis
from storefront.core.config import settings

def get_client() -> Redis:
    return Redis.from_url(settings.REDIS_URL, decode_responses=True)

def cart_key(email: str) -> str:
    return f"cart:{email}"

def get_cart(email: str) -> Dict[str, Any]:
    r = get_client()
    items = r.hgetall(cart_key(email))  # {variant_id_str: json}
    parsed = [json.loads(val) for val in items.values()]
    parsed.sort(key=lambda it: it["variant_id"])
    return {
        "items": parsed,
        "subtotal_cents": sum(int(it["qty"]) * int(it["unit_price_cents"]) for it in parsed),
    }

def get_item(email: str, variant_id: int) -> Dict[str, Any] | None:
    raw = get_client().hget(cart_key(email), str(variant_id))
    return json.loads(raw) if raw else None

def put_item(email: str, item: Dict[str, Any]):
    r = get_client()
    r.hset(cart_key(email), str(item["variant_id"]), json.dumps(item))

def delete_item(email: str, variant_id: int):
    r = get_client()
    r.hdel(cart_key(email), str(variant_id))

def clear_cart(email: str):
    r = get_client()
    r.delete(cart_key(email))
