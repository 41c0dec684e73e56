QUERY_SYNONYMS = {
    "agenda": ["calendario", "programacao", "cronograma", "proximos"],
    "calendario": ["agenda", "programacao", "cronograma"],
    "contra": ["enfrenta", "enfrentar", "enfrentara", "encara", "encarar", "pega", "adversario",
               "rival", "duelo", "versus", "oponente", "diante"],
    "proximo": ["proximos", "proxima", "seguinte", "posterior", "agenda", "calendario"],
    "jogos": ["partidas", "jogo", "agenda", "calendario"],
    "jogo": ["partida", "duelo", "confronto", "compromisso", "agenda"],
    "partida": ["jogo", "partidas", "jogos"],
    "partidas": ["jogos", "agenda"],
    "proximos": ["agenda", "calendario", "sequencia", "proximas"],
    "semana": ["semanal", "rodada"],
    "assistir": ["transmissao", "onde-assistir", "streaming", "canal"],
    "onde": ["onde-assistir", "assistir", "transmissao"],
    "horario": ["quando", "hora"],
    "quem": ["adversario", "rival", "oponente", "time", "clube"],
}


class QueryExpander:
    """
    Expands query tokens with the fixed football synonym table.

    Original tokens keep `original_weight`, added synonyms get `synonym_weight`.
    Multi-word synonyms ("onde-assistir") are split into their parts.
    """

    def __init__(self, synonyms=None, max_synonyms=None, synonym_weight=1.0, original_weight=1.0):
        self.synonyms = QUERY_SYNONYMS if synonyms is None else synonyms
        self.max_synonyms = max_synonyms
        self.synonym_weight = synonym_weight
        self.original_weight = original_weight

    def get_synonyms(self, token):
        synonyms = self.synonyms.get(token, [])
        if self.max_synonyms is not None:
            synonyms = synonyms[:self.max_synonyms]
        words = []
        for synonym in synonyms:
            words.extend(part for part in synonym.split("-") if part)
        return words

    def expand(self, tokens):
        """
        Returns:
            list of (token, weight) without duplicates, originals first
        """
        weighted_tokens = []
        seen = set()
        for token in tokens:
            if token not in seen:
                seen.add(token)
                weighted_tokens.append((token, self.original_weight))

        for token in tokens:
            for synonym in self.get_synonyms(token):
                if synonym not in seen:
                    seen.add(synonym)
                    weighted_tokens.append((synonym, self.synonym_weight))

        return weighted_tokens
