"""Per-language keyword tables and the shared operator set."""

from typing import Dict, FrozenSet


def _words(text: str) -> FrozenSet[str]:
    return frozenset(text.split())


KEYWORDS: Dict[str, FrozenSet[str]] = {
    "typescript": _words("""
        abstract as async await break case catch class const continue debugger
        declare default delete do else enum export extends false finally for
        from function get if implements import in instanceof interface is keyof
        let module namespace never new null of package private protected public
        readonly require return set static super switch this throw true try type
        typeof undefined var void while with yield
    """),
    "javascript": _words("""
        async await break case catch class const continue debugger default
        delete do else export extends false finally for from function get if
        import in instanceof let new null of return set static super switch
        this throw true try typeof undefined var void while with yield
    """),
    "python": _words("""
        False None True and as assert async await break class continue def del
        elif else except finally for from global if import in is lambda
        nonlocal not or pass raise return try while with yield
    """),
    "java": _words("""
        abstract assert boolean break byte case catch char class const continue
        default do double else enum extends final finally float for goto if
        implements import instanceof int interface long native new package
        private protected public return short static strictfp super switch
        synchronized this throw throws transient try void volatile while
    """),
    "go": _words("""
        break case chan const continue default defer else fallthrough for func
        go goto if import interface map package range return select struct
        switch type var
    """),
    "rust": _words("""
        as async await break const continue crate dyn else enum extern false fn
        for if impl in let loop match mod move mut pub ref return self Self
        static struct super trait true type unsafe use where while
    """),
    "c": _words("""
        auto break case char const continue default do double else enum extern
        float for goto if inline int long register restrict return short
        signed sizeof static struct switch typedef union unsigned void volatile
        while
    """),
    "cpp": _words("""
        alignas alignof and and_eq asm auto bitand bitor bool break case catch
        char char16_t char32_t class compl const constexpr const_cast continue
        decltype default delete do double dynamic_cast else enum explicit
        export extern false float for friend goto if inline int long mutable
        namespace new noexcept not not_eq nullptr operator or or_eq private
        protected public register reinterpret_cast return short signed sizeof
        static static_assert static_cast struct switch template this
        thread_local throw true try typedef typeid typename union unsigned
        using virtual void volatile wchar_t while xor xor_eq
    """),
    "csharp": _words("""
        abstract as base bool break byte case catch char checked class const
        continue decimal default delegate do double else enum event explicit
        extern false finally fixed float for foreach goto if implicit in int
        interface internal is lock long namespace new null object operator out
        override params private protected public readonly ref return sbyte
        sealed short sizeof stackalloc static string struct switch this throw
        true try typeof uint ulong unchecked unsafe ushort using var virtual
        void volatile while
    """),
}

DEFAULT_LANGUAGE = "typescript"

# Languages whose keyword table is consulted; anything else falls back to
# the default table.
SUPPORTED_LANGUAGES = tuple(sorted(KEYWORDS))

OPERATORS: FrozenSet[str] = _words("""
    + - * / % = == === != !== < > <= >= && || ! & | ^ ~ << >> >>> ++ --
    += -= *= /= %= &= |= ^= <<= >>= >>>= => -> ? : :: . .. ... ?? ?.
""")

MAX_OPERATOR_LENGTH = max(len(op) for op in OPERATORS)

PUNCTUATION: FrozenSet[str] = frozenset("(){}[];,")


def keywords_for(language: str) -> FrozenSet[str]:
    """Keyword table for ``language`` (default table for unknown languages)."""
    return KEYWORDS.get((language or DEFAULT_LANGUAGE).lower(), KEYWORDS[DEFAULT_LANGUAGE])
