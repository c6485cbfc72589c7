from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from packages.common.config import SymbolInfo, normalize_symbol

# UDF symbol_info group -> descriptor exchange
GROUP_EXCHANGES: Dict[str, str] = {
    "FOREX": "FOREX",
    "NYSE": "NSE",
    "AMEX": "INDEX",
}


@dataclass(frozen=True)
class SymbolMatch:
    symbol: str
    full_name: str
    description: str
    exchange: str
    ticker: str
    type: str

    @classmethod
    def of(cls, symbol: str, info: SymbolInfo) -> "SymbolMatch":
        return cls(
            symbol=symbol,
            full_name=f"{info.exchange}:{symbol}",
            description=info.name,
            exchange=info.exchange,
            ticker=symbol,
            type=info.type,
        )


class SymbolRegistry:
    """
    Symbol descriptors keyed by upper-case ticker.

    The admin path may add symbols while requests read, so every access goes
    through one lock.
    """

    def __init__(self, symbols: Optional[Mapping[str, SymbolInfo]] = None):
        self._symbols: Dict[str, SymbolInfo] = {}
        self._lock = threading.Lock()
        for sym, info in (symbols or {}).items():
            self._symbols[normalize_symbol(sym)] = info

    def __len__(self) -> int:
        with self._lock:
            return len(self._symbols)

    def get(self, symbol: str) -> Optional[SymbolInfo]:
        with self._lock:
            return self._symbols.get(symbol)

    def contains(self, symbol: str) -> bool:
        return self.get(symbol) is not None

    def symbols(self) -> List[str]:
        with self._lock:
            return list(self._symbols.keys())

    def items(self) -> List[tuple[str, SymbolInfo]]:
        with self._lock:
            return list(self._symbols.items())

    def add(self, symbol: str, info: SymbolInfo) -> str:
        sym = normalize_symbol(symbol)
        with self._lock:
            self._symbols[sym] = info
        return sym

    def search(
        self,
        query: str = "",
        *,
        type_filter: str = "",
        exchange: str = "",
        limit: int = 30,
    ) -> List[SymbolMatch]:
        q = query.strip().upper()
        out: List[SymbolMatch] = []
        for sym, info in self.items():
            if q and q not in sym and q not in info.name.upper():
                continue
            if type_filter and info.type != type_filter:
                continue
            if exchange and info.exchange != exchange:
                continue
            out.append(SymbolMatch.of(sym, info))
        return out[: max(0, limit)]

    def group(self, group: str) -> List[SymbolMatch]:
        exch = GROUP_EXCHANGES.get(group)
        if exch is None:
            return []
        return [SymbolMatch.of(sym, info) for sym, info in self.items() if info.exchange == exch]
