from typing import List, NamedTuple

from Futebol.text_preprocessor import normalize_text


class Team(NamedTuple):
    id: str
    name: str
    aliases: List[str]


BRAZIL_TEAMS = [
    Team("CRU", "Cruzeiro", ["Cruzeiro Esporte Clube", "Cabuloso", "Raposa"]),
    Team("FLA", "Flamengo", ["CR Flamengo", "Mengão", "Mengo"]),
    Team("CAM", "Atlético-MG", ["Atlético Mineiro", "Galo", "Galo Doido"]),
    Team("ATH", "Athletico-PR", ["Athletico Paranaense", "Furacão"]),
    Team("BAH", "Bahia", ["Esporte Clube Bahia", "Tricolor de Aço", "Esquadrão"]),
    Team("BOT", "Botafogo", ["Botafogo de Futebol e Regatas", "Fogão", "Glorioso"]),
    Team("BRG", "Red Bull Bragantino", ["Bragantino", "Massa Bruta"]),
    Team("CEA", "Ceará", ["Ceará Sporting Club", "Vozão"]),
    Team("COR", "Corinthians", ["Sport Club Corinthians Paulista", "Timão", "Coringão"]),
    Team("CRI", "Criciúma", ["Criciúma Esporte Clube", "Tricolor Carvoeiro"]),
    Team("FLU", "Fluminense", ["Fluminense Football Club", "Fluzão", "Nense"]),
    Team("FOR", "Fortaleza", ["Fortaleza Esporte Clube", "Leão do Pici"]),
    Team("GRE", "Grêmio", ["Grêmio Foot-Ball Porto Alegrense", "Imortal Tricolor", "Tricolor Gaúcho"]),
    Team("INT", "Internacional", ["Sport Club Internacional", "Colorado", "Inter"]),
    Team("JUV", "Juventude", ["Esporte Clube Juventude"]),
    Team("PAL", "Palmeiras", ["Sociedade Esportiva Palmeiras", "Verdão", "Alviverde"]),
    Team("SAO", "São Paulo", ["São Paulo Futebol Clube", "Tricolor Paulista", "Soberano"]),
    Team("SAN", "Santos", ["Santos Futebol Clube", "Peixe"]),
    Team("VAS", "Vasco da Gama", ["Vasco", "Club de Regatas Vasco da Gama", "Gigante da Colina", "Cruzmaltino"]),
    Team("VIT", "Vitória", ["Esporte Clube Vitória", "Leão da Barra"]),
    Team("MIR", "Mirassol", ["Mirassol Futebol Clube"]),
]


def _alias_keys(team):
    keys = {normalize_text(alias) for alias in [team.name] + team.aliases}
    return {key for key in keys if key}


TEAM_KEYS = {team.id: _alias_keys(team) for team in BRAZIL_TEAMS}


def _contains_phrase(haystack, phrase):
    # word-boundary match on normalized, space-separated text
    return f" {phrase} " in f" {haystack} "


def find_teams(text):
    """Ids of clubs whose name or alias appears as a whole phrase in text."""
    normalized = normalize_text(text)
    if not normalized:
        return []
    return [team_id for team_id, keys in TEAM_KEYS.items()
            if any(_contains_phrase(normalized, key) for key in keys)]


def mentions_team(team_ids, *fields):
    """True if any of the given clubs is named in any of the fields (title, URL, domain...)."""
    if not team_ids:
        return False
    normalized = " ".join(normalize_text(f) for f in fields if f)
    return any(_contains_phrase(normalized, key)
               for team_id in team_ids for key in TEAM_KEYS.get(team_id, ()))
