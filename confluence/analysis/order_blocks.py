"""Order block and breaker detection — pure functions."""

from confluence.analysis.indicators import safe_atr
from confluence.analysis.models import Breaker, Candle, OrderBlock

ORDER_BLOCK_WINDOW = 80
DISPLACEMENT_BARS = 5
MIN_DISPLACEMENT_ATR = 1.5


def _strength(displacement: float) -> str:
    if displacement >= 3.0:
        return "EXCEPTIONAL"
    if displacement >= 2.0:
        return "STRONG"
    return "MODERATE"


def detect_order_blocks(candles: list[Candle], lookback: int = ORDER_BLOCK_WINDOW) -> list[OrderBlock]:
    """Find the last opposite-coloured candle before each impulsive move.

    DEMAND: a bearish candle followed by a bullish one, after which the
    highest close of the next five candles clears the block's high by at
    least 1.5 × ATR.  SUPPLY is symmetric.  A block is *fresh* while no
    candle after the displacement window has traded back into it.
    """
    atr = safe_atr(candles, 14)
    if atr <= 0:
        return []

    start = max(0, len(candles) - lookback)
    blocks: list[OrderBlock] = []

    for i in range(start, len(candles) - 1):
        candle = candles[i]
        nxt = candles[i + 1]
        follow = candles[i + 1 : i + 1 + DISPLACEMENT_BARS]
        after = candles[i + 1 + DISPLACEMENT_BARS :]

        if candle.is_bearish and nxt.is_bullish:
            move = max(c.close for c in follow) - candle.high
            if move < MIN_DISPLACEMENT_ATR * atr:
                continue
            displacement = move / atr
            blocks.append(OrderBlock(
                top=candle.high,
                bottom=candle.low,
                kind="DEMAND",
                index=i,
                time=candle.time,
                displacement=round(displacement, 2),
                strength=_strength(displacement),
                fresh=not any(c.low <= candle.high for c in after),
            ))
        elif candle.is_bullish and nxt.is_bearish:
            move = candle.low - min(c.close for c in follow)
            if move < MIN_DISPLACEMENT_ATR * atr:
                continue
            displacement = move / atr
            blocks.append(OrderBlock(
                top=candle.high,
                bottom=candle.low,
                kind="SUPPLY",
                index=i,
                time=candle.time,
                displacement=round(displacement, 2),
                strength=_strength(displacement),
                fresh=not any(c.high >= candle.low for c in after),
            ))

    return blocks


def detect_breakers(candles: list[Candle], blocks: list[OrderBlock]) -> list[Breaker]:
    """Order blocks later closed through, flipped to the opposite polarity.

    A DEMAND block closed below its bottom becomes a BEARISH breaker; a
    SUPPLY block closed above its top becomes a BULLISH breaker.
    """
    breakers: list[Breaker] = []
    for block in blocks:
        for j in range(block.index + 2, len(candles)):
            close = candles[j].close
            if block.kind == "DEMAND" and close < block.bottom:
                direction = "BEARISH"
            elif block.kind == "SUPPLY" and close > block.top:
                direction = "BULLISH"
            else:
                continue
            breakers.append(Breaker(
                top=block.top,
                bottom=block.bottom,
                direction=direction,
                index=block.index,
                break_index=j,
                time=candles[j].time,
            ))
            break
    return breakers
