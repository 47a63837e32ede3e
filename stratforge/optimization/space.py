"""参数空间：integer / float / choice / boolean。"""

from __future__ import annotations

import itertools
import math
import random
from dataclasses import dataclass
from typing import Any, Iterator, Literal, Mapping, Sequence

import numpy as np

from stratforge.common.errors import ConfigurationError

ParamType = Literal["integer", "float", "choice", "boolean"]
_TYPES = ("integer", "float", "choice", "boolean")


@dataclass(frozen=True)
class ParamSpec:
    name: str
    type: ParamType
    min: float | None = None
    max: float | None = None
    step: float | None = None
    choices: tuple[Any, ...] = ()

    @classmethod
    def from_mapping(cls, name: str, raw: Mapping[str, Any]) -> "ParamSpec":
        ptype = raw.get("type")
        if ptype not in _TYPES:
            raise ConfigurationError(f"parameter {name!r}: unknown type {ptype!r}")
        if ptype == "choice":
            choices = tuple(raw.get("choices") or ())
            if not choices:
                raise ConfigurationError(f"parameter {name!r}: choice needs a non-empty 'choices' list")
            return cls(name, "choice", choices=choices)
        if ptype == "boolean":
            return cls(name, "boolean")

        lo, hi, step = raw.get("min"), raw.get("max"), raw.get("step")
        if lo is None or hi is None:
            raise ConfigurationError(f"parameter {name!r}: {ptype} needs 'min' and 'max'")
        if hi < lo:
            raise ConfigurationError(f"parameter {name!r}: max {hi} < min {lo}")
        if step is not None and step <= 0:
            raise ConfigurationError(f"parameter {name!r}: step must be positive")
        if ptype == "integer":
            if int(lo) != lo or int(hi) != hi or (step is not None and int(step) != step):
                raise ConfigurationError(f"parameter {name!r}: integer bounds/step must be whole numbers")
            return cls(name, "integer", int(lo), int(hi), int(step) if step is not None else 1)
        default_step = (hi - lo) / 10 if hi > lo else None
        return cls(name, "float", float(lo), float(hi), float(step) if step is not None else default_step)

    def grid_values(self) -> list[Any]:
        """离散化取值：数值型从 min 按 step 步进到 max（含端点）。"""
        if self.type == "choice":
            return list(self.choices)
        if self.type == "boolean":
            return [True, False]
        if self.type == "integer":
            return list(range(int(self.min), int(self.max) + 1, int(self.step or 1)))
        if not self.step or self.max == self.min:
            return [self.min]
        # 乘法生成，避免累加带来的浮点漂移
        count = int(math.floor((self.max - self.min) / self.step + 1e-9)) + 1
        return [self.min + k * self.step for k in range(count)]

    @property
    def cardinality(self) -> int:
        return len(self.grid_values())

    def sample(self, rng: random.Random) -> Any:
        """均匀采样一个取值。"""
        if self.type == "integer":
            return rng.randint(int(self.min), int(self.max))
        if self.type == "float":
            return rng.uniform(self.min, self.max)
        if self.type == "choice":
            return self.choices[rng.randrange(len(self.choices))]
        return rng.random() < 0.5

    def encode(self, value: Any) -> float:
        """转成数值坐标（布尔取 0/1，choice 取下标）。"""
        if self.type == "boolean":
            return float(bool(value))
        if self.type == "choice":
            try:
                return float(self.choices.index(value))
            except ValueError:
                return float("nan")
        return float(value)


class ParameterSpace:
    """按声明顺序保存的参数空间。"""

    def __init__(self, specs: Sequence[ParamSpec]):
        if not specs:
            raise ConfigurationError("parameter space is empty")
        names = [s.name for s in specs]
        if len(set(names)) != len(names):
            raise ConfigurationError(f"duplicate parameter names in {names}")
        self.specs = list(specs)

    @classmethod
    def from_mapping(cls, mapping: "Mapping[str, Mapping[str, Any]] | ParameterSpace") -> "ParameterSpace":
        if isinstance(mapping, ParameterSpace):
            return mapping
        if not isinstance(mapping, Mapping):
            raise ConfigurationError("parameter space must be a mapping of name -> spec")
        specs = []
        for name, raw in mapping.items():
            if not isinstance(raw, Mapping):
                raise ConfigurationError(f"parameter {name!r}: spec must be a mapping")
            specs.append(ParamSpec.from_mapping(str(name), raw))
        return cls(specs)

    @property
    def names(self) -> list[str]:
        return [s.name for s in self.specs]

    def __iter__(self) -> Iterator[ParamSpec]:
        return iter(self.specs)

    def __len__(self) -> int:
        return len(self.specs)

    def grid_size(self) -> int:
        return math.prod(s.cardinality for s in self.specs)

    def grid(self) -> Iterator[dict[str, Any]]:
        """笛卡尔积，按声明顺序（最后一个参数变化最快）。"""
        names = self.names
        for combo in itertools.product(*(s.grid_values() for s in self.specs)):
            yield dict(zip(names, combo))

    def sample(self, rng: random.Random) -> dict[str, Any]:
        return {s.name: s.sample(rng) for s in self.specs}

    def encode(self, params: Mapping[str, Any]) -> np.ndarray:
        return np.array([s.encode(params[s.name]) for s in self.specs], dtype=float)
