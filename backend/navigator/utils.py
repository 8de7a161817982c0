import math
from collections.abc import Mapping
from typing import Any, Dict, List, Union

from bson import json_util
from bson.code import Code

JsonValue = Union[None, bool, int, float, str, List[Any], Dict[str, Any]]

_RELAXED = json_util.RELAXED_JSON_OPTIONS


def _non_finite(value: float) -> Dict[str, str]:
    if math.isnan(value):
        return {"$numberDouble": "NaN"}
    return {"$numberDouble": "Infinity" if value > 0 else "-Infinity"}


def to_jsonable(obj: Any) -> JsonValue:
    """Recursively render Mongo values as relaxed Extended JSON.

    ObjectId becomes {"$oid": ...}, datetimes {"$date": ...} and so on.
    Anything json_util cannot describe falls back to its string form.
    """
    # Code subclasses str
    if isinstance(obj, Code):
        return to_jsonable(json_util.default(obj, json_options=_RELAXED))
    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, int):
        return int(obj)
    if isinstance(obj, float):
        return obj if math.isfinite(obj) else _non_finite(obj)
    if isinstance(obj, Mapping):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(i) for i in obj]
    try:
        return to_jsonable(json_util.default(obj, json_options=_RELAXED))
    except (TypeError, ValueError):
        return str(obj)
