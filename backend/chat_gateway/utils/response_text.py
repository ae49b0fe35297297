"""从 Gemini 返回结构中提取纯文本

不同 SDK 版本/调用路径返回的结构不一样，这里按固定顺序尝试一组提取策略，
第一个得到非空字符串的策略胜出；全部失败时返回整个响应的格式化 JSON，
保证永远返回非空字符串且从不抛异常。
"""
import json
from collections.abc import Mapping
from typing import Any, Callable, Iterable, List, Optional, Tuple

from .structured_logger import get_logger

logger = get_logger(__name__)


def _get(obj: Any, key: str) -> Any:
    """同时支持 dict 键和对象属性；SDK 的便捷属性在无内容时可能直接抛异常"""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    try:
        return getattr(obj, key, None)
    except Exception:
        return None


def _first(seq: Any) -> Any:
    if seq is None or isinstance(seq, (str, bytes, Mapping)):
        return None
    try:
        return seq[0] if len(seq) > 0 else None
    except (TypeError, IndexError, KeyError):
        return None


def _as_text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _roots(resp: Any) -> Iterable[Any]:
    # 部分调用路径把真正的结果包在 response 字段里
    wrapped = _get(resp, "response")
    if wrapped is not None:
        yield wrapped
    yield resp


def _first_candidate_content(root: Any) -> Any:
    return _get(_first(_get(root, "candidates")), "content")


def _output_text(resp: Any) -> Optional[str]:
    for root in _roots(resp):
        text = _as_text(_get(root, "output_text"))
        if text:
            return text
    return None


def _text_field(resp: Any) -> Optional[str]:
    for root in _roots(resp):
        text = _as_text(_get(root, "text"))
        if text:
            return text
    return None


def _candidate_parts(resp: Any) -> Optional[str]:
    for root in _roots(resp):
        parts = _get(_first_candidate_content(root), "parts")
        if parts is None or isinstance(parts, (str, bytes, Mapping)):
            continue
        try:
            fragments = [_get(part, "text") for part in parts]
        except TypeError:
            continue
        text = "".join(f for f in fragments if isinstance(f, str)).strip()
        if text:
            return text
    return None


def _legacy_paths(resp: Any) -> Optional[str]:
    for root in _roots(resp):
        content = _first_candidate_content(root)
        text = _as_text(_get(_first(_get(content, "parts")), "text")) or _as_text(_get(content, "text"))
        if text:
            return text
    return None


EXTRACTION_STRATEGIES: List[Tuple[str, Callable[[Any], Optional[str]]]] = [
    ("output_text", _output_text),
    ("text", _text_field),
    ("candidate_parts", _candidate_parts),
    ("legacy_paths", _legacy_paths),
]


def _plain(obj: Any) -> Any:
    """SDK 对象转成可 JSON 序列化的结构（pydantic 模型 / proto 消息 / 普通对象）"""
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        return model_dump(mode="json", exclude_none=True)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return obj


def _json_default(obj: Any) -> Any:
    plain = _plain(obj)
    if plain is not obj:
        return plain
    if hasattr(obj, "__dict__"):
        return vars(obj)
    if isinstance(obj, bytes):
        return f"<{len(obj)} bytes>"
    return str(obj)


def dump_response(resp: Any) -> str:
    """把响应格式化为缩进 JSON；无法序列化时退回 repr"""
    try:
        return json.dumps(_plain(resp), indent=2, ensure_ascii=False, default=_json_default)
    except Exception:
        return repr(resp)


def extract_text(resp: Any) -> str:
    """从模型响应中提取文本

    Args:
        resp: Gemini SDK 返回对象或等价的 dict

    Returns:
        str: 提取出的文本；全部策略失败时为响应的 JSON 转储
    """
    try:
        for name, strategy in EXTRACTION_STRATEGIES:
            text = strategy(resp)
            if text:
                logger.debug("提取模型文本", strategy=name, length=len(text))
                return text
    except Exception as e:
        logger.error("提取模型文本出错", error=str(e))
        return dump_response(resp)

    logger.warning("未识别的模型响应结构，返回原始转储")
    return dump_response(resp)
