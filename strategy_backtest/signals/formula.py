"""
논리식 시그널.

[ 역할 ]
    앞서 계산된 시그널 컬럼들을 AND/OR/NOT으로 조합.
    문자열 식은 구성 시점에 한 번만 파싱하여 식 트리(Column/And/Or/Not)로 만든다.
    봉 루프에서는 문자열을 해석하지 않는다.

[ 지원 문법 ]
    &, |, ~   또는   and, or, not   그리고 괄호
    예) "longfilter & longthreshold"
        "(a | b) and not c"
"""

import ast
from abc import ABC, abstractmethod
from functools import reduce

import pandas as pd

from strategy_backtest.core.errors import ConfigurationError
from strategy_backtest.core.signal import Signal, transition
from strategy_backtest.signals import register


class Expr(ABC):
    """식 트리 노드."""

    @abstractmethod
    def evaluate(self, frame: pd.DataFrame) -> pd.Series:
        ...

    @abstractmethod
    def columns(self) -> list[str]:
        ...


class Column(Expr):
    def __init__(self, name: str):
        self.name = name

    def evaluate(self, frame: pd.DataFrame) -> pd.Series:
        return frame[self.name].fillna(False).astype(bool)

    def columns(self) -> list[str]:
        return [self.name]

    def __repr__(self) -> str:
        return self.name


class And(Expr):
    def __init__(self, *operands: Expr):
        self.operands = operands

    def evaluate(self, frame: pd.DataFrame) -> pd.Series:
        return reduce(lambda a, b: a & b, (op.evaluate(frame) for op in self.operands))

    def columns(self) -> list[str]:
        return [c for op in self.operands for c in op.columns()]

    def __repr__(self) -> str:
        return "(" + " & ".join(map(repr, self.operands)) + ")"


class Or(Expr):
    def __init__(self, *operands: Expr):
        self.operands = operands

    def evaluate(self, frame: pd.DataFrame) -> pd.Series:
        return reduce(lambda a, b: a | b, (op.evaluate(frame) for op in self.operands))

    def columns(self) -> list[str]:
        return [c for op in self.operands for c in op.columns()]

    def __repr__(self) -> str:
        return "(" + " | ".join(map(repr, self.operands)) + ")"


class Not(Expr):
    def __init__(self, operand: Expr):
        self.operand = operand

    def evaluate(self, frame: pd.DataFrame) -> pd.Series:
        return ~self.operand.evaluate(frame)

    def columns(self) -> list[str]:
        return self.operand.columns()

    def __repr__(self) -> str:
        return f"~{self.operand!r}"


def parse_formula(text: str) -> Expr:
    """논리식 문자열을 식 트리로 변환.

    Raises:
        ConfigurationError: 지원하지 않는 문법
    """
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except SyntaxError as e:
        raise ConfigurationError(f"논리식 문법 오류: '{text}' ({e.msg})") from e
    return _convert(tree.body, text)


def _convert(node: ast.AST, text: str) -> Expr:
    if isinstance(node, ast.Name):
        return Column(node.id)
    if isinstance(node, ast.BoolOp):
        operands = [_convert(v, text) for v in node.values]
        return And(*operands) if isinstance(node.op, ast.And) else Or(*operands)
    if isinstance(node, ast.BinOp) and isinstance(node.op, (ast.BitAnd, ast.BitOr)):
        left = _convert(node.left, text)
        right = _convert(node.right, text)
        return And(left, right) if isinstance(node.op, ast.BitAnd) else Or(left, right)
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.Not, ast.Invert)):
        return Not(_convert(node.operand, text))
    raise ConfigurationError(
        f"논리식에서 지원하지 않는 표현: '{ast.unparse(node)}' (식: '{text}')"
    )


@register("formula")
class Formula(Signal):
    """시그널 컬럼 논리식. cross=True면 식이 새로 참이 된 봉에서만 True."""

    def __init__(self, formula: str | Expr, cross: bool = False):
        self.expr = parse_formula(formula) if isinstance(formula, str) else formula
        self.cross = bool(cross)

    @property
    def columns(self) -> list[str]:
        return list(dict.fromkeys(self.expr.columns()))

    def _evaluate(self, frame: pd.DataFrame) -> pd.Series:
        state = self.expr.evaluate(frame)
        if self.cross:
            defined = pd.Series(True, index=frame.index)
            return transition(state, defined)
        return state

    def __repr__(self) -> str:
        return f"Formula({self.expr!r}, cross={self.cross})"
