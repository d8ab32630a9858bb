"""
Nickname and spelling-variant equivalence for name search.

Names are grouped; two names are equivalent when they share a group. The
relation is symmetric ("bob" finds "robert" and "robert" finds "bob") but
deliberately not transitive across groups: "pat" belongs to both the Patricia
and the Patrick groups without making Patricia equivalent to Rick.
"""

from typing import Dict, FrozenSet, Iterable, Optional, Set, Tuple

NICKNAME_GROUPS: Tuple[Tuple[str, ...], ...] = (
    # Male names
    ("robert", "bob", "rob", "bobby", "robbie", "bert"),
    ("william", "bill", "will", "billy", "willy", "willie", "liam"),
    ("richard", "rick", "rich", "dick", "ricky", "richie"),
    ("james", "jim", "jimmy", "jamie", "jay"),
    ("michael", "mike", "mick", "mickey", "mikey"),
    ("david", "dave", "davey", "davy"),
    ("christopher", "chris", "topher", "kit"),
    ("thomas", "tom", "tommy", "thom"),
    ("matthew", "matt", "matty"),
    ("anthony", "tony", "ant"),
    ("daniel", "dan", "danny", "dane"),
    ("joseph", "joe", "joey", "jos"),
    ("john", "johnny", "jack", "jon"),
    ("jonathan", "jon", "johnny", "jack"),
    ("jack", "jackson"),
    ("andrew", "andy", "drew"),
    ("nicholas", "nick", "nicky", "nic"),
    ("benjamin", "ben", "benny", "benji"),
    ("alexander", "alex", "al", "xander"),
    ("albert", "al", "bert", "albie"),
    ("alan", "al"),
    ("edward", "ed", "eddie", "ted", "eddy"),
    ("theodore", "ted", "theo"),
    ("charles", "charlie", "chuck", "chas"),
    ("ronald", "ron", "ronnie"),
    ("kenneth", "ken", "kenny"),
    ("samuel", "sam", "sammy"),
    ("gregory", "greg", "gregg"),
    ("patrick", "pat", "paddy", "rick"),
    ("timothy", "tim", "timmy"),
    ("joshua", "josh"),
    ("stephen", "steven", "steve", "stevie"),
    ("francis", "frank", "frankie"),
    ("lawrence", "larry", "lars"),
    ("donald", "don"),
    # Female names
    ("elizabeth", "liz", "beth", "betty", "lisa", "eliza", "libby", "betsy", "bessie"),
    ("patricia", "pat", "patty", "trish", "tricia"),
    ("jennifer", "jen", "jenny", "jenn", "jenni"),
    ("susan", "sue", "susie", "suzy", "suzanne"),
    ("margaret", "meg", "maggie", "peggy", "margie", "marge"),
    ("catherine", "katherine", "kate", "cathy", "katie", "cat", "kitty"),
    ("mary", "marie", "maria"),
    ("barbara", "barb", "barbie", "babs"),
    ("nancy", "nan"),
    ("helen", "nell", "nellie"),
    ("dorothy", "dot", "dolly", "dottie"),
    ("carol", "carole", "caroline"),
    ("ruth", "ruthie"),
    ("sharon", "shari"),
    ("michelle", "shelley", "shelly", "mickey"),
    ("laura", "laurie"),
    ("kimberly", "kim", "kimmy"),
    ("deborah", "debbie", "deb", "debby"),
    ("donna", "don"),
    ("emily", "emma", "em"),
    ("cynthia", "cindy", "cyn"),
    ("amanda", "mandy", "amy"),
    ("amelia", "amy"),
    ("stephanie", "steph", "stephie"),
    ("melissa", "mel", "missy"),
    ("melanie", "mel"),
    ("nicole", "nicki", "nikki", "nic"),
    ("jessica", "jess", "jessie"),
    ("rebecca", "becky", "becca"),
    ("virginia", "ginny", "ginger"),
    ("samantha", "sam", "sammy"),
    ("alexandra", "alex", "sandra"),
    ("jacqueline", "jackie", "jacqui"),
)

SPELLING_VARIANT_GROUPS: Tuple[Tuple[str, ...], ...] = (
    ("john", "jon", "johan", "johnathan"),
    ("stephen", "steven", "stefan"),
    ("catherine", "katherine", "kathryn", "katharine"),
    ("ann", "anne", "anna"),
    ("sarah", "sara"),
    ("rebecca", "rebekah"),
    ("geoffrey", "jeffrey"),
    ("philip", "phillip"),
    ("teresa", "theresa"),
    ("lisa", "liza"),
    ("christian", "cristian"),
    ("brian", "bryan"),
    ("sean", "shaun", "shawn"),
)


def normalize_name(name: Optional[str]) -> str:
    """Trim and lower-case a name the same way the database side does."""
    return (name or "").strip().lower()


class NicknameTable:
    """Lookup from a name to the names considered equivalent to it."""

    def __init__(self, groups: Iterable[Iterable[str]] = ()) -> None:
        self._equivalents: Dict[str, Set[str]] = {}
        for group in groups:
            self.add_group(group)

    def add_group(self, names: Iterable[str]) -> None:
        members = {normalize_name(name) for name in names} - {""}
        for member in members:
            self._equivalents.setdefault(member, set()).update(members)

    def equivalents(self, name: str) -> FrozenSet[str]:
        """Names equivalent to ``name``, always including ``name`` itself."""
        key = normalize_name(name)
        if not key:
            return frozenset()
        return frozenset(self._equivalents.get(key, ())) | {key}

    def are_equivalent(self, first: str, second: str) -> bool:
        return normalize_name(second) in self.equivalents(first)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._equivalents

    def __len__(self) -> int:
        return len(self._equivalents)


_default_table: Optional[NicknameTable] = None


def get_default_nickname_table() -> NicknameTable:
    """Table built from the bundled nickname and spelling-variant groups."""
    global _default_table
    if _default_table is None:
        _default_table = NicknameTable(NICKNAME_GROUPS + SPELLING_VARIANT_GROUPS)
    return _default_table
