from fastapi import APIRouter

from app.services import prices as prices_service

router = APIRouter()


@router.get("")
async def prices_list():
    """Latest stored market prices."""
    prices = await prices_service.list_prices()
    return {
        "prices": [
            {
                "symbol": p.symbol,
                "name": p.name,
                "price": p.price,
                "change_1h": p.change_1h,
                "change_24h": p.change_24h,
                "change_7d": p.change_7d,
                "market_cap": p.market_cap,
                "volume_24h": p.volume_24h,
                "logo_url": p.logo_url,
                "updated_at": p.updated_at.isoformat(),
            }
            for p in prices
        ]
    }
