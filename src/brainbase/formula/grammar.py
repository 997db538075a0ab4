"""Lark grammar definition for BrainBase formulas.

This grammar supports:
- Arithmetic: +, -, *, /, %, ^ (power)
- Comparison: =, ==, !=, <>, <, >, <=, >=
- String concatenation: &
- Logical: AND / &&, OR / ||, NOT / !
- Property references: {Property Name} or [Property Name]
- Caller-supplied variables: $name
- Function calls: FUNCTION(arg1, arg2, ...)
- Literals: numbers, strings, TRUE, FALSE, BLANK

Precedence, lowest first: OR, AND, NOT, comparison, &, + -, * / %, ^, unary.
Keywords followed by "(" lex as function names, so AND(a, b) and
a AND b both work.
"""

FORMULA_GRAMMAR = r"""
    ?start: expression

    ?expression: or_expr

    ?or_expr: and_expr
        | or_expr _OR and_expr -> or_op

    ?and_expr: not_expr
        | and_expr _AND not_expr -> and_op

    ?not_expr: comparison
        | _NOT not_expr -> not_op

    ?comparison: concat
        | comparison _EQ concat -> eq
        | comparison _NE concat -> ne
        | comparison "<" concat -> lt
        | comparison ">" concat -> gt
        | comparison "<=" concat -> le
        | comparison ">=" concat -> ge

    ?concat: additive
        | concat "&" additive -> string_concat

    ?additive: multiplicative
        | additive "+" multiplicative -> add
        | additive "-" multiplicative -> sub

    ?multiplicative: power
        | multiplicative "*" power -> mul
        | multiplicative "/" power -> div
        | multiplicative "%" power -> mod

    ?power: unary
        | unary "^" power -> pow

    ?unary: atom
        | "-" unary -> neg
        | "+" unary -> pos

    ?atom: NUMBER -> number
        | STRING -> string
        | BOOLEAN -> boolean
        | FIELD_REF -> property_ref
        | BRACKET_REF -> property_ref
        | VARIABLE -> variable
        | function_call
        | "(" expression ")"

    function_call: FUNCTION_NAME "(" [arguments] ")"

    arguments: expression ("," expression)*

    // Keyword operators; a following "(" makes them function names instead
    _OR.3: /OR\b(?!\s*\()/i | "||"
    _AND.3: /AND\b(?!\s*\()/i | "&&"
    _NOT.3: /NOT\b(?!\s*\()/i | /!(?!=)/

    _EQ: "==" | "="
    _NE: "!=" | "<>"

    BOOLEAN.2: /(TRUE|FALSE|BLANK)\b(?!\s*\()/i

    // Property reference: {Name} or [Name]
    FIELD_REF: /\{[^}]+\}/
    BRACKET_REF: /\[[^\]]+\]/

    VARIABLE: /\$[A-Za-z_][A-Za-z0-9_]*/

    FUNCTION_NAME: /[A-Za-z_][A-Za-z0-9_]*/

    // Single or double quoted, backslash escapes allowed
    STRING: /"(\\.|[^"\\])*"/ | /'(\\.|[^'\\])*'/

    // Sign is handled by the unary rule
    NUMBER: /(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?/

    %import common.WS
    %ignore WS
"""
