from kbembed.providers.classification.rule_based_classifier import RuleBasedClassifier

__all__ = ["RuleBasedClassifier"]
