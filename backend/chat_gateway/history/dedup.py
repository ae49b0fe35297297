"""历史消息去重视图"""
from typing import Any, List, Mapping, Sequence, Tuple, TypeVar

T = TypeVar("T")


def _signature(message: Any) -> Tuple[Any, str, bool, bool]:
    # 同时兼容 Message 模型和接口返回的 dict（camelCase）
    if isinstance(message, Mapping):
        return (
            message.get("role"),
            message.get("content") or "",
            bool(message.get("hasImage")),
            bool(message.get("hasAudio")),
        )
    return (
        getattr(message, "role", None),
        getattr(message, "content", None) or "",
        bool(getattr(message, "has_image", None)),
        bool(getattr(message, "has_audio", None)),
    )


def dedupe_consecutive(messages: Sequence[T]) -> List[T]:
    """去掉与上一条保留消息完全相同的紧邻重复消息

    只比较 role、content（None 视为空串）以及 hasImage/hasAudio 的真假值；
    非紧邻的重复保留。返回新列表，不修改输入。
    """
    deduped: List[T] = []
    previous = None
    for message in messages:
        signature = _signature(message)
        if deduped and signature == previous:
            continue
        deduped.append(message)
        previous = signature
    return deduped
