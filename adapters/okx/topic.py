"""
구독 토픽

(channel, params) 조합으로 하나의 구독 스트림을 식별.
파라미터 순서는 동등성에 영향을 주지 않으며, 와이어 직렬화는 항상 같은 순서.
"""

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class Topic:
    """구독 토픽 (불변)

    params는 키 기준으로 정렬된 (key, value) 튜플로 보관하여
    해시/동등성이 입력 순서와 무관하도록 함.

    Attributes:
        channel: 채널 이름 (예: tickers, candle1m)
        params: 정렬된 파라미터 (예: (("instId", "BTC-USDT"),))
    """

    channel: str
    params: tuple[tuple[str, str], ...] = ()

    @classmethod
    def create(cls, channel: str, params: Mapping[str, Any] | None = None) -> "Topic":
        """Topic 생성 헬퍼

        None/빈 문자열 값은 생략, 나머지는 문자열로 변환.
        """
        if not channel:
            raise ValueError("channel은 비어 있을 수 없습니다")

        items = []
        for key, value in (params or {}).items():
            if key == "channel" or value is None or value == "":
                continue
            items.append((key, str(value)))

        return cls(channel=channel, params=tuple(sorted(items)))

    @classmethod
    def from_arg(cls, arg: Mapping[str, Any]) -> "Topic":
        """와이어 arg 객체({channel, ...params})에서 Topic 생성"""
        return cls.create(str(arg.get("channel", "")), arg)

    def to_arg(self) -> dict[str, str]:
        """제어 프레임용 arg 객체 (channel 먼저, 이후 키 정렬 순)"""
        arg = {"channel": self.channel}
        arg.update(self.params)
        return arg

    def matches(self, arg: Mapping[str, Any]) -> bool:
        """arg가 이 토픽의 모든 파라미터를 포함하는지 (채널 이름 제외)

        거래소가 푸시 arg에 uid 등 필드를 추가하는 경우를 허용.
        """
        for key, value in self.params:
            if key not in arg or str(arg[key]) != value:
                return False
        return True

    def __str__(self) -> str:
        if not self.params:
            return self.channel
        joined = ",".join(f"{k}={v}" for k, v in self.params)
        return f"{self.channel}({joined})"
