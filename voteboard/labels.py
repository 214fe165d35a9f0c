"""言語別のカラム名・順位ラベル・デザイン案カタログ.

Notion 上のテーブルは作成時の言語でカラム名が決まるため、
読み書きのたびにカラム名から言語を逆引きする。
"""

from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_LANGS = ("fr", "en", "es")
DEFAULT_LANG = "fr"

DESIGN_TITLE_COL = "Design"
RESULT_TITLE_COL = "Client"
PLACEHOLDER_CLIENT_NAME = "Vote"
ANONYMOUS_VOTER = "Anonyme"
ARCHIVE_PREFIX = "[Archive"


@dataclass(frozen=True)
class Labels:
    """1 言語分のカラム名定義."""

    ranking: str
    rank_options: tuple[str, ...]
    description: str
    recommended: str
    image: str
    comment: str
    db_title: str
    results_db_title: str
    result_rank_cols: tuple[str, ...]
    result_comment: str
    result_date: str
    result_vote_link: str
    result_site_link: str
    result_client_id: str


LABELS: dict[str, Labels] = {
    "fr": Labels(
        ranking="Classement",
        rank_options=("1er choix", "2e choix", "3e choix", "4e choix"),
        description="Description",
        recommended="Recommandé",
        image="Image",
        comment="Commentaire",
        db_title="Designs proposés",
        results_db_title="Résultats",
        result_rank_cols=("1er choix", "2e choix", "3e choix", "4e choix"),
        result_comment="Commentaire",
        result_date="Date",
        result_vote_link="Lien vote",
        result_site_link="Site client",
        result_client_id="ID page client",
    ),
    "en": Labels(
        ranking="Ranking",
        rank_options=("1st choice", "2nd choice", "3rd choice", "4th choice"),
        description="Description",
        recommended="Recommended",
        image="Image",
        comment="Comment",
        db_title="Proposed designs",
        results_db_title="Results",
        result_rank_cols=("1st choice", "2nd choice", "3rd choice", "4th choice"),
        result_comment="Comment",
        result_date="Date",
        result_vote_link="Vote link",
        result_site_link="Client site",
        result_client_id="Client page ID",
    ),
    "es": Labels(
        ranking="Clasificación",
        rank_options=("1ª opción", "2ª opción", "3ª opción", "4ª opción"),
        description="Descripción",
        recommended="Recomendado",
        image="Imagen",
        comment="Comentario",
        db_title="Diseños propuestos",
        results_db_title="Resultados",
        result_rank_cols=("1ª opción", "2ª opción", "3ª opción", "4ª opción"),
        result_comment="Comentario",
        result_date="Fecha",
        result_vote_link="Enlace de voto",
        result_site_link="Sitio del cliente",
        result_client_id="ID página cliente",
    ),
}

RESULTS_DB_TITLES = tuple(lbl.results_db_title for lbl in LABELS.values())

RANK_COLORS = ("green", "blue", "yellow", "gray")


def get_labels(lang: str) -> Labels:
    """未対応の言語は既定言語にフォールバックする."""
    return LABELS.get(lang, LABELS[DEFAULT_LANG])


def detect_design_lang(property_names) -> str:
    """デザインテーブルのカラム名から言語を判定する."""
    names = set(property_names)
    for lang in SUPPORTED_LANGS:
        if LABELS[lang].ranking in names:
            return lang
    return DEFAULT_LANG


def detect_results_lang(property_names) -> str:
    """集計テーブルのカラム名から言語を判定する."""
    names = set(property_names)
    for lang in SUPPORTED_LANGS:
        if LABELS[lang].result_rank_cols[0] in names:
            return lang
    return DEFAULT_LANG


def rank_ordinal(label: str) -> int | None:
    """順位ラベルから序数を取り出す（"2e choix" -> 2）.

    既知ラベルのみ受け付ける。
    """
    for lbl in LABELS.values():
        if label in lbl.rank_options:
            return lbl.rank_options.index(label) + 1
    return None


@dataclass(frozen=True)
class Concept:
    """ウィジェットのデザイン案 1 件."""

    id: str
    letter: str
    name: dict[str, str]
    description: dict[str, str]
    recommended: bool = False

    def title(self, lang: str) -> str:
        """テーブル行のタイトル. "Option X" トークンは集計で再パースされる."""
        name = self.name.get(lang, self.name[DEFAULT_LANG])
        title = f"Option {self.letter} - {name}"
        return f"{title} ⭐" if self.recommended else title

    def describe(self, lang: str) -> str:
        return self.description.get(lang, self.description[DEFAULT_LANG])


CONCEPTS: dict[str, Concept] = {
    "B": Concept(
        id="B",
        letter="A",
        name={"fr": "Classique", "en": "Classic", "es": "Clásico"},
        description={
            "fr": "Rotation 180° avec témoin de présence externe",
            "en": "180° rotation with external presence indicator",
            "es": "Rotación 180° con indicador de presencia externo",
        },
    ),
    "B2": Concept(
        id="B2",
        letter="B",
        name={"fr": "Présence Intégrée", "en": "Integrated Presence", "es": "Presencia Integrada"},
        description={
            "fr": "Le cercle du logo devient le témoin de présence",
            "en": "The logo circle becomes the presence indicator",
            "es": "El círculo del logo se convierte en el indicador de presencia",
        },
        recommended=True,
    ),
    "D": Concept(
        id="D",
        letter="C",
        name={"fr": "Symétrie Verticale", "en": "Vertical Symmetry", "es": "Simetría Vertical"},
        description={
            "fr": "Pill en haut, cercle en bas avec témoin externe",
            "en": "Pill on top, circle at bottom with external indicator",
            "es": "Píldora arriba, círculo abajo con indicador externo",
        },
    ),
    "D2": Concept(
        id="D2",
        letter="D",
        name={"fr": "Symétrie + Glow", "en": "Symmetry + Glow", "es": "Simetría + Glow"},
        description={
            "fr": "Symétrie verticale avec cercle vert intégré",
            "en": "Vertical symmetry with integrated green circle",
            "es": "Simetría vertical con círculo verde integrado",
        },
        recommended=True,
    ),
    "OLD": Concept(
        id="OLD",
        letter="E",
        name={"fr": "Actuel + Présence", "en": "Current + Presence", "es": "Actual + Presencia"},
        description={
            "fr": "Widget actuel avec point vert de présence",
            "en": "Current widget with green presence dot",
            "es": "Widget actual con punto verde de presencia",
        },
    ),
    "OLD2": Concept(
        id="OLD2",
        letter="F",
        name={"fr": "Actuel + Badge", "en": "Current + Badge", "es": "Actual + Insignia"},
        description={
            "fr": "Widget actuel avec badge de notification",
            "en": "Current widget with notification badge",
            "es": "Widget actual con insignia de notificación",
        },
    ),
}

DEFAULT_CONCEPT_ORDER = ("B", "B2", "D", "D2")
