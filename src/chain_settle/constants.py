"""Network constants: chain ids, token and protocol contract addresses."""

from enum import Enum


class ChainKey(str, Enum):
    """Supported networks."""

    BASE = "base"
    SCROLL = "scroll"
    POLYGON = "polygon"
    OPTIMISM = "optimism"
    ARBITRUM = "arbitrum"


class AssetSymbol(str, Enum):
    """Fungible assets handled by the engine."""

    USDC = "USDC"
    USDT = "USDT"
    ETH = "ETH"

    @property
    def decimals(self) -> int:
        return ASSET_DECIMALS[self]

    @property
    def is_native(self) -> bool:
        return self is AssetSymbol.ETH

    @classmethod
    def parse(cls, value: "str | AssetSymbol") -> "AssetSymbol":
        if isinstance(value, AssetSymbol):
            return value
        return cls(str(value).upper())


ASSET_DECIMALS = {
    AssetSymbol.USDC: 6,
    AssetSymbol.USDT: 6,
    AssetSymbol.ETH: 18,
}

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Odos represents the native asset with the zero address
NATIVE_TOKEN_ADDRESS = ZERO_ADDRESS

CHAIN_IDS = {
    ChainKey.BASE: 8453,
    ChainKey.SCROLL: 534352,
    ChainKey.POLYGON: 137,
    ChainKey.OPTIMISM: 10,
    ChainKey.ARBITRUM: 42161,
}

ACROSS_SPOKE_POOLS = {
    ChainKey.BASE: "0x09aea4b2242abC8bb4BB78D537A67a245A7bEC64",
    ChainKey.SCROLL: "0x3bad7ad0728f9917d1bf08af5782dcbd516cdd96",
    ChainKey.POLYGON: "0x9295ee1d8C5b022Be115A2AD3c30C72E34e7F096",
    ChainKey.OPTIMISM: "0x6f26Bf09B1C792e3228e5467807a900A503c0281",
    ChainKey.ARBITRUM: "0xe35e9842fceaCA96570B734083f4a58e8F7C5f2A",
}

TOKEN_ADDRESSES: dict[ChainKey, dict[AssetSymbol, str]] = {
    ChainKey.BASE: {
        AssetSymbol.USDC: "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        AssetSymbol.USDT: "0xfde4C96c8593536E31F229EA8f37b2ADa2699bb2",
    },
    ChainKey.SCROLL: {
        AssetSymbol.USDC: "0x06eFdBFf2a14a7c8E15944D1F4A48F9F95F663A4",
        AssetSymbol.USDT: "0xf55bec9cafdbe8730f096aa55dad6d22d44099df",
    },
    ChainKey.POLYGON: {
        AssetSymbol.USDC: "0x3c499c542cef5e3811e1192ce70d8cc03d5c3359",
        AssetSymbol.USDT: "0xc2132D05D31c914a87C6611C10748AEb04B58e8F",
    },
    ChainKey.OPTIMISM: {
        AssetSymbol.USDC: "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
        AssetSymbol.USDT: "0x94b008aA00579c1307B0EF2c499aD98a8ce58e58",
    },
    ChainKey.ARBITRUM: {
        AssetSymbol.USDC: "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
        AssetSymbol.USDT: "0xFd086bC7CD5C481DCC9C85ebE478A1C0b69FCbb9",
    },
}

WRAPPED_NATIVE_ADDRESSES = {
    ChainKey.BASE: "0x4200000000000000000000000000000000000006",
    ChainKey.SCROLL: "0x5300000000000000000000000000000000000004",
    ChainKey.POLYGON: "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619",
    ChainKey.OPTIMISM: "0x4200000000000000000000000000000000000006",
    ChainKey.ARBITRUM: "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
}

ODOS_ROUTERS = {
    ChainKey.BASE: "0x19cEeAd7105607Cd444F5ad10dd51356436095a1",
    ChainKey.SCROLL: "0xbFe03C9E20a9Fc0b37de01A172F207004935E0b1",
    ChainKey.POLYGON: "0x4E3288c9ca110bCC82bf38F09A7b425c095d92Bf",
    ChainKey.OPTIMISM: "0xCa423977156BB05b13A2BA3b76Bc5419E2fE9680",
    ChainKey.ARBITRUM: "0xa669e7A0d4b3e4Fa48af2dE86BD4CD7126Be4e13",
}

ODOS_REFERRAL_CODE = 2620173912

ACTIVE_CHAINS = (
    ChainKey.BASE,
    ChainKey.SCROLL,
    ChainKey.POLYGON,
    ChainKey.OPTIMISM,
    ChainKey.ARBITRUM,
)

DEFAULT_SETTLEMENT_CHAIN = ChainKey.SCROLL

SUPPORTED_BRIDGE_ROUTES = frozenset(
    {
        (ChainKey.BASE, ChainKey.SCROLL),
        (ChainKey.OPTIMISM, ChainKey.SCROLL),
        (ChainKey.ARBITRUM, ChainKey.SCROLL),
        (ChainKey.POLYGON, ChainKey.SCROLL),
    }
)


def get_chain_id(chain: ChainKey) -> int:
    """Get the EVM chain id for a chain key.

    Raises:
        ValueError: If the chain is unknown
    """
    if chain not in CHAIN_IDS:
        raise ValueError(f"Unknown chain: {chain}")
    return CHAIN_IDS[chain]
