"""
Rule Classifier — Deterministic Fallback Judge

Judges a situation without any AI provider by walking an ordered
cascade of tiers. Each tier is a phrase predicate over the lower-cased
context plus a fixed verdict, a fixed score, and a pool of reasoning
strings.

Ordering is severity ranking: earlier tiers describe worse conduct,
and the first tier whose predicate holds wins. A context that matches
several tiers is judged at the most severe one. The last tier always
matches, so classification is total over every string, including "".

The only non-determinism is the reasoning draw from the matched tier's
pool. Pass a seeded ``random.Random`` to make it reproducible.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

SCORE_MIN = 1
SCORE_MAX = 10

FOLLOW_UP_LABEL = "Additional context: "


# ============================================================
# DATA STRUCTURES
# ============================================================

class Verdict(str, Enum):
    """Binary outcome of a judgment."""
    ASSHOLE = "ASSHOLE"
    NOT_ASSHOLE = "NOT_ASSHOLE"

    @property
    def short(self) -> str:
        """Community shorthand, also the value persisted by the store."""
        return "YTA" if self is Verdict.ASSHOLE else "NTA"


Predicate = Callable[[str], bool]


@dataclass(frozen=True)
class Tier:
    """One rule in the cascade."""
    id: str
    description: str
    verdict: Verdict
    score: int
    responses: tuple[str, ...]
    predicate: Predicate = field(repr=False)

    def __post_init__(self):
        if not SCORE_MIN <= self.score <= SCORE_MAX:
            raise ValueError(f"Tier {self.id} score {self.score} outside 1-10")
        if not self.responses:
            raise ValueError(f"Tier {self.id} has an empty response pool")

    def matches(self, text_lower: str) -> bool:
        return self.predicate(text_lower)


@dataclass
class JudgmentResult:
    """Outcome of one judgment, from either the AI provider or the rules."""
    verdict: Verdict
    score: int
    reasoning: str
    provenance: str = "rules"           # "ai" | "rules"
    provider_name: Optional[str] = None
    provider_error: Optional[str] = None
    tier: Optional[str] = None          # Matched tier id (rules only)

    @property
    def judgment(self) -> str:
        return self.verdict.short

    @property
    def ai_used(self) -> bool:
        return self.provenance == "ai"

    def to_dict(self) -> dict:
        return {
            "verdict": self.verdict.value,
            "judgment": self.judgment,
            "score": self.score,
            "reasoning": self.reasoning,
            "provenance": self.provenance,
            "provider_name": self.provider_name,
            "provider_error": self.provider_error,
            "tier": self.tier,
        }


# ============================================================
# PREDICATE BUILDERS
# ============================================================

def contains(*phrases: str) -> Predicate:
    """True when any phrase occurs in the text."""
    def check(text: str) -> bool:
        return any(phrase in text for phrase in phrases)
    return check


def lacks(*phrases: str) -> Predicate:
    """True when none of the phrases occur in the text."""
    present = contains(*phrases)

    def check(text: str) -> bool:
        return not present(text)
    return check


def both(*predicates: Predicate) -> Predicate:
    def check(text: str) -> bool:
        return all(p(text) for p in predicates)
    return check


def either(*predicates: Predicate) -> Predicate:
    def check(text: str) -> bool:
        return any(p(text) for p in predicates)
    return check


def always(text: str) -> bool:
    return True


def clamp_score(score: int) -> int:
    """Force a score into the 1-10 range."""
    return max(SCORE_MIN, min(SCORE_MAX, int(score)))


def merge_context(situation: str, follow_up: Optional[str] = None) -> str:
    """Join the situation and an optional follow-up into one context."""
    if follow_up:
        return f"{situation}\n\n{FOLLOW_UP_LABEL}{follow_up}"
    return situation


# ============================================================
# TIER TABLE (ordered, most severe first)
# ============================================================

VIOLENCE_AGAINST_VULNERABLE = Tier(
    id="VIOLENCE_AGAINST_VULNERABLE",
    description="Physical violence against a child, elderly or disabled person, or animal",
    verdict=Verdict.ASSHOLE,
    score=10,
    predicate=both(
        contains("kicked", "hit", "punched", "slapped", "pushed", "shoved",
                 "beat", "abused"),
        contains("kid", "child", "baby", "toddler", "minor", "elderly",
                 "old person", "disabled", "animal", "pet", "dog", "cat"),
    ),
    responses=(
        "Violence against a child is absolutely unacceptable. This is clearly wrong and you are the asshole.",
        "Physical harm to a child is not just asshole behavior - it's potentially criminal. You are clearly in the wrong here.",
        "You physically harmed a child. This is absolutely unacceptable and wrong. You are clearly the asshole here.",
        "Violence against a vulnerable person, especially a child, is never acceptable. You are definitely the asshole.",
    ),
)

SEXUAL_ABUSE_OR_DOXXING = Tier(
    id="SEXUAL_ABUSE_OR_DOXXING",
    description="Sexual assault, sharing intimate images, or exposing personal information",
    verdict=Verdict.ASSHOLE,
    score=10,
    predicate=either(
        contains("sexual assault", "raped", "revenge porn"),
        both(contains("nude"), contains("shared")),
        contains("doxxed", "doxxing"),
        both(contains("leaked"), contains("address", "phone", "personal")),
    ),
    responses=(
        "This is literally illegal and you're asking if you're wrong? YES. You're not just an asshole, you're a criminal.",
        "Bro this is giving \"I committed a crime and want validation\" energy. No. Absolutely not. You're 100% the asshole.",
        "This is beyond asshole behavior. This is \"call the police\" behavior. What is wrong with you?",
        "You did WHAT? And you think there's any scenario where you're NOT the asshole? Delusional.",
    ),
)

PHYSICAL_VIOLENCE = Tier(
    id="PHYSICAL_VIOLENCE",
    description="Physical violence",
    verdict=Verdict.ASSHOLE,
    score=9,
    predicate=either(
        contains("kicked", "hit", "punched", "violence", "slapped", "beat",
                 "assaulted", "attacked"),
        both(contains("threw"), contains("at")),
        contains("choked", "strangled"),
    ),
    responses=(
        "Bro, you literally did something that would make a villain in a kids movie look like a saint. This is WILD.",
        "Okay so you're out here doing crimes and asking if you're the asshole? Yes. Obviously. The audacity is astronomical.",
        "This is giving \"I know I messed up but maybe if I ask nicely people will say it's fine\" energy. It's not fine. You're absolutely the asshole here.",
        "You did WHAT? And you're asking if YOU'RE the problem? The math ain't mathing, my friend.",
    ),
)

BIGOTRY = Tier(
    id="BIGOTRY",
    description="Bigotry, discrimination, or slurs",
    verdict=Verdict.ASSHOLE,
    score=9,
    predicate=contains(
        "racist", "racism", "homophobic", "homophobia", "transphobic",
        "transphobia", "ableist", "ableism", "fat shamed", "fat shaming",
        "body shamed", "body shaming", "slur", "n-word", "f slur", "r-word",
    ),
    responses=(
        "Discrimination and bigotry are never acceptable. You are clearly the asshole here.",
        "Prejudiced behavior is wrong regardless of context. You are the asshole.",
        "Discrimination is never okay. You are clearly in the wrong here.",
        "This type of discriminatory behavior is unacceptable. You are the asshole.",
    ),
)

SERIOUS_WRONGDOING = Tier(
    id="SERIOUS_WRONGDOING",
    description="Cheating, lying, stealing, betrayal, manipulation, stalking, threats",
    verdict=Verdict.ASSHOLE,
    score=8,
    predicate=contains(
        "cheated", "lied", "stole", "betrayed", "abused", "manipulated",
        "gaslighted", "gaslighting", "stalked", "stalking", "threatened",
        "threat", "blackmailed", "blackmail",
    ),
    responses=(
        "This behavior is clearly wrong and harmful. You are the asshole here.",
        "These actions are unacceptable and harmful to others. You are in the wrong.",
        "This type of behavior is not acceptable. You are the asshole.",
        "What you did was wrong and harmful. You are clearly the asshole in this situation.",
    ),
)

SELFISHNESS = Tier(
    id="SELFISHNESS",
    description="Selfishness, public humiliation, or ruining an event",
    verdict=Verdict.ASSHOLE,
    score=7,
    predicate=either(
        contains("selfish", "only thinking about myself", "ignored",
                 "dismissed", "refused to help", "ghosted", "ghosting",
                 "publicly humiliated"),
        both(contains("embarrassed"), contains("public")),
        contains("made fun of", "mocked", "laughed at", "ridiculed"),
        both(contains("canceled"), contains("birthday")),
        both(contains("ruined"), contains("wedding", "party", "event")),
    ),
    responses=(
        "This behavior shows a lack of consideration for others. You are the asshole here.",
        "Being this self-centered and ignoring others' feelings is wrong. You are the asshole.",
        "This demonstrates a lack of empathy and consideration for others. You are in the wrong.",
        "Putting your own needs above others without consideration makes you the asshole.",
    ),
)

VERBAL_AGGRESSION = Tier(
    id="VERBAL_AGGRESSION",
    description="Yelling, cursing, or insulting someone",
    verdict=Verdict.ASSHOLE,
    score=6,
    predicate=either(
        contains("yelled at", "screamed at", "cussed out", "cursed at",
                 "insulted", "name called"),
        both(contains("called"), contains("stupid", "idiot", "dumb")),
    ),
    responses=(
        "Verbal aggression is not acceptable behavior. You are the asshole here.",
        "Losing your temper and being verbally aggressive is wrong, even when frustrated. You are the asshole.",
        "Verbal attacks are harmful and unacceptable. You are in the wrong here.",
        "Being verbally aggressive toward someone is not acceptable. You are the asshole.",
    ),
)

DECENT_BEHAVIOR = Tier(
    id="DECENT_BEHAVIOR",
    description="Apologizing, keeping boundaries, or protecting someone",
    verdict=Verdict.NOT_ASSHOLE,
    score=2,
    predicate=either(
        contains("sorry", "apologize", "tried to help", "did my best",
                 "boundary", "respect"),
        both(contains("stood up"), contains("bully", "abuse")),
        contains("protected", "defended"),
        both(contains("reported"), contains("abuse", "harassment", "crime")),
        contains("said no"),
        both(contains("refused"), contains("uncomfortable")),
        contains("walked away"),
        both(contains("left"), contains("toxic")),
        both(contains("cut off"), contains("toxic")),
        both(contains("stopped"), contains("abuse")),
    ),
    responses=(
        "You're out here being a decent human being and someone is mad about it? That's their problem, not yours.",
        "You did nothing wrong and honestly, whoever is making you feel bad about this needs to touch grass.",
        "This is giving \"I'm being gaslit\" energy. You're fine, they're the problem.",
        "You're literally just existing and being reasonable. If someone has an issue with that, that's a them problem.",
        "You stood up for what's right and someone is mad? Good. They should be mad. You're absolutely NTA.",
        "You protected someone or yourself? That's not asshole behavior, that's being a decent person. NTA all the way.",
    ),
)

HONEST_MISTAKE = Tier(
    id="HONEST_MISTAKE",
    description="Accident, miscommunication, or an honest mistake",
    verdict=Verdict.NOT_ASSHOLE,
    score=3,
    predicate=either(
        contains("misunderstanding", "accident", "didn't mean to",
                 "unintentional", "honest mistake", "genuine mistake",
                 "miscommunication", "misheard", "misunderstood",
                 "wasn't aware", "didn't know", "wasn't informed"),
        both(contains("forgot"), lacks("on purpose")),
    ),
    responses=(
        "This sounds like a classic case of \"oops, my bad\" and honestly? Accidents happen. You're good.",
        "You didn't mean to cause drama and it shows. This is just life being messy, not you being an asshole.",
        "This is giving \"I made a mistake but I'm human\" vibes. We all mess up sometimes, you're fine.",
        "Honestly? This seems like a genuine mistake. Unless you're secretly a supervillain, you're probably fine.",
        "You made an honest mistake and you're being reasonable about it? That's not asshole behavior, that's being human.",
        "This is just a misunderstanding. You're fine, don't stress about it.",
    ),
)

NEUTRAL = Tier(
    id="NEUTRAL",
    description="No recognizable phrases",
    verdict=Verdict.NOT_ASSHOLE,
    score=5,
    predicate=always,
    responses=(
        "This is giving \"I have no idea what's happening but I'm trying my best\" energy. You're probably fine?",
        "The situation is messy but you seem reasonable enough. Could go either way honestly.",
        "This is peak \"life is complicated\" content. You're probably not the asshole, but who knows anymore?",
        "Honestly? This is giving neutral vibes. You're probably fine, but maybe think about it a bit more.",
    ),
)

TIERS: tuple[Tier, ...] = (
    VIOLENCE_AGAINST_VULNERABLE,
    SEXUAL_ABUSE_OR_DOXXING,
    PHYSICAL_VIOLENCE,
    BIGOTRY,
    SERIOUS_WRONGDOING,
    SELFISHNESS,
    VERBAL_AGGRESSION,
    DECENT_BEHAVIOR,
    HONEST_MISTAKE,
    NEUTRAL,
)


# ============================================================
# CLASSIFIER
# ============================================================

class RuleClassifier:
    """
    Walks the tier table first-match-wins.

    Holds no mutable state apart from its random source, so a single
    instance is shared by every request.
    """

    def __init__(
        self,
        tiers: tuple[Tier, ...] = TIERS,
        rng: Optional[random.Random] = None,
    ):
        if not tiers:
            raise ValueError("RuleClassifier needs at least one tier")
        self._tiers = tiers
        self._rng = rng or random.Random()

    @property
    def tiers(self) -> tuple[Tier, ...]:
        return self._tiers

    def match(self, context: str) -> Tier:
        """Return the first tier whose predicate holds on the context."""
        text_lower = context.lower()
        for tier in self._tiers:
            if tier.matches(text_lower):
                return tier
        # Only reachable with a custom table lacking a catch-all
        return self._tiers[-1]

    def classify(
        self,
        situation: str,
        follow_up: Optional[str] = None,
        rng: Optional[random.Random] = None,
    ) -> JudgmentResult:
        """
        Judge a situation, optionally extended by follow-up context.

        The follow-up is merged before matching, so phrase exclusions
        (e.g. "forgot" without "on purpose") see the whole story.
        """
        tier = self.match(merge_context(situation, follow_up))
        reasoning = (rng or self._rng).choice(tier.responses)
        return JudgmentResult(
            verdict=tier.verdict,
            score=clamp_score(tier.score),
            reasoning=reasoning,
            provenance="rules",
            tier=tier.id,
        )

    def get_tiers(self) -> list[dict]:
        """Describe the cascade in evaluation order. Used by GET /api/rules."""
        return [
            {
                "position": position,
                "id": tier.id,
                "description": tier.description,
                "verdict": tier.verdict.value,
                "judgment": tier.verdict.short,
                "score": tier.score,
                "responses": len(tier.responses),
            }
            for position, tier in enumerate(self._tiers, start=1)
        ]


# ============================================================
# SINGLETON
# ============================================================

rule_classifier = RuleClassifier()


def classify(
    situation: str,
    follow_up: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> JudgmentResult:
    """Classify with the shared classifier."""
    return rule_classifier.classify(situation, follow_up, rng=rng)
