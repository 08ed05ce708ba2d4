from skyroute.classifier.classifier import DEFAULT_RULE_SETS, ConfidenceClassifier, parse_context
from skyroute.classifier.rules import ExtractionRule, LanguageRules, Lexicon, Stage

__all__ = [
    "ConfidenceClassifier",
    "DEFAULT_RULE_SETS",
    "ExtractionRule",
    "LanguageRules",
    "Lexicon",
    "Stage",
    "parse_context",
]
