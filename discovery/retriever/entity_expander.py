"""
Entity Expander

Broadens a skill or role term into synonyms and related concepts so
keyword search can find "reactjs" when asked about "react".
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class ExpandedTerms:
    original: str
    expansions: List[str] = field(default_factory=list)
    related: List[str] = field(default_factory=list)
    synonyms: List[str] = field(default_factory=list)


class EntityExpander:
    """Static vocabulary tables for term expansion. No ranking."""

    SKILL_EXPANSIONS: Dict[str, List[str]] = {
        # Programming languages
        "javascript": ["js", "es6", "es2015", "ecmascript", "node.js", "nodejs"],
        "typescript": ["ts", "typed javascript"],
        "python": ["py", "python3", "python2"],
        "java": ["jvm", "java8", "java11", "java17"],
        "c#": ["csharp", "dotnet", ".net"],
        "go": ["golang"],
        "rust": ["rust-lang"],
        # Frontend
        "react": ["reactjs", "react.js", "react native", "react hooks"],
        "angular": ["angular.js", "angularjs", "angular2+"],
        "vue": ["vuejs", "vue.js", "vue3"],
        "frontend": ["front-end", "front end", "ui development", "client-side"],
        # Backend
        "backend": ["back-end", "back end", "server-side", "api development"],
        "node": ["nodejs", "node.js"],
        "django": ["python django", "django rest"],
        "rails": ["ruby on rails", "ror"],
        # Cloud & DevOps
        "aws": ["amazon web services", "amazon cloud"],
        "azure": ["microsoft azure", "ms azure"],
        "gcp": ["google cloud", "google cloud platform"],
        "kubernetes": ["k8s", "container orchestration"],
        "docker": ["containerization", "containers"],
        "devops": ["dev ops", "ci/cd", "deployment", "infrastructure"],
        # Data & AI
        "machine learning": ["ml", "deep learning", "neural networks", "ai"],
        "data science": ["data analysis", "data analytics", "statistics"],
        "ai": ["artificial intelligence", "machine learning", "ml"],
        "database": ["db", "sql", "nosql", "data storage"],
        # Seniority and general
        "developer": ["dev", "programmer", "coder", "engineer"],
        "software": ["software development", "software engineering", "programming"],
        "fullstack": ["full-stack", "full stack"],
        "lead": ["team lead", "tech lead", "technical lead"],
        "senior": ["sr", "experienced", "advanced"],
        "junior": ["jr", "entry level", "beginner"],
    }

    ROLE_EXPANSIONS: Dict[str, List[str]] = {
        "developer": ["engineer", "programmer", "dev"],
        "engineer": ["developer", "programmer"],
        "designer": ["ux designer", "ui designer", "product designer"],
        "manager": ["mgr", "team lead", "supervisor"],
        "architect": ["technical architect", "solution architect", "software architect"],
        "analyst": ["business analyst", "data analyst", "systems analyst"],
        "scientist": ["researcher", "data scientist"],
    }

    # Related concepts: not synonyms, but often go together
    CONCEPT_RELATIONS: Dict[str, List[str]] = {
        "react": ["javascript", "frontend", "spa", "component", "jsx"],
        "backend": ["api", "database", "server", "microservices"],
        "frontend": ["ui", "ux", "responsive", "web", "browser"],
        "mobile": ["ios", "android", "react native", "flutter"],
        "devops": ["deployment", "ci/cd", "infrastructure", "automation"],
        "agile": ["scrum", "kanban", "sprint", "iteration"],
    }

    SOFTWARE_TERMS = [
        "software", "development", "programming", "coding",
        "engineer", "developer", "programmer", "coder",
        "application", "app", "system", "platform",
    ]

    def expand_term(self, term: str) -> ExpandedTerms:
        lowered = term.lower()
        return ExpandedTerms(
            original=term,
            expansions=self._expansions(lowered),
            related=list(self.CONCEPT_RELATIONS.get(lowered, [])),
        )

    def expand_all_terms(self, terms: List[str]) -> List[ExpandedTerms]:
        return [self.expand_term(t) for t in terms]

    def get_all_search_terms(self, term: str) -> List[str]:
        """Original term plus expansions and related concepts, first-seen order"""
        expanded = self.expand_term(term)
        ordered = dict.fromkeys(
            [expanded.original, *expanded.expansions, *expanded.related, *expanded.synonyms]
        )
        return list(ordered)

    def _expansions(self, term: str) -> List[str]:
        if term in self.SKILL_EXPANSIONS:
            return list(self.SKILL_EXPANSIONS[term])
        if term in self.ROLE_EXPANSIONS:
            return list(self.ROLE_EXPANSIONS[term])

        # Reverse lookup: the term is itself a synonym of some key
        for key, values in self.SKILL_EXPANSIONS.items():
            if term in values:
                return [key] + [v for v in values if v != term]
        return []

    def expand_software_query(self, query: str) -> List[str]:
        """Generic software vocabulary plus any platform words in ``query``"""
        terms = list(self.SOFTWARE_TERMS)
        for match in re.findall(r"\b(web|mobile|desktop|cloud|api|frontend|backend)\b", query, re.I):
            terms.append(match.lower())
        return list(dict.fromkeys(terms))
