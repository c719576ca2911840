"""
printdesk/flow/menu.py

Purpose: The printing help desk menu

- Single source of truth for states, menu options and texts
- Builds the MenuGrammar used by the conversation engine
"""

from enum import Enum
from typing import Dict, List

from printdesk.flow.grammar import MenuGrammar, TransitionRule, WILDCARD


class MenuState(str, Enum):
    """
    Every position a user can be in.
    """

    START = "start"

    # Print quota walkthrough
    PRINT_1 = "print_1"
    PRINT_2 = "print_2"
    PRINT_3 = "print_3"

    # Problem reports
    PROBLEM_1 = "problem_1"
    PROBLEM_PRINTER = "problem_printer"
    PROBLEM_SYSTEM = "problem_system"

    # Questions
    QUESTION_1 = "question_1"
    QUESTION_HOURS = "question_hours"


# Menu option labels (also the quick-reply payloads)
OPTION_ABOUT_PRINTING = "Sobre Impressão"
OPTION_REPORT_PROBLEM = "Reportar Problema"
OPTION_ASK_QUESTION = "Tirar Dúvida"
OPTION_NEXT = "Próximo"
OPTION_PRINTER = "Impressora"
OPTION_SYSTEM = "Sistema"
OPTION_QUOTA = "Cota"
OPTION_HOURS = "Horários"
OPTION_RESTART = "Recomeçar"


STATE_CONTENT: Dict[str, str] = {
    MenuState.START.value: (
        "Olá! Eu sou o assistente de impressão. 🖨️\n"
        "Como posso ajudar?"
    ),
    MenuState.PRINT_1.value: (
        "Cada aluno tem uma cota de 100 páginas por semestre. "
        "A cota é renovada no início de cada semestre letivo e não é cumulativa."
    ),
    MenuState.PRINT_2.value: (
        "Impressões em frente e verso contam como duas páginas. "
        "Impressões coloridas descontam o triplo da cota."
    ),
    MenuState.PRINT_3.value: (
        "Para consultar o saldo da sua cota, acesse o portal do aluno "
        "em Serviços > Impressão."
    ),
    MenuState.PROBLEM_1.value: (
        "Que pena! Onde está o problema?"
    ),
    MenuState.PROBLEM_PRINTER.value: (
        "Anotamos o problema com a impressora. Informe o número da impressora "
        "ao técnico do laboratório ou envie um e-mail para suporte@impressao.edu."
    ),
    MenuState.PROBLEM_SYSTEM.value: (
        "Problemas no sistema de impressão costumam ser resolvidos em até "
        "24 horas. Se persistir, abra um chamado no portal de TI."
    ),
    MenuState.QUESTION_1.value: (
        "Sobre o que é a sua dúvida?"
    ),
    MenuState.QUESTION_HOURS.value: (
        "Os laboratórios de impressão funcionam de segunda a sexta, "
        "das 8h às 22h, e aos sábados, das 8h às 12h."
    ),
}


TRANSITION_RULES: List[TransitionRule] = [
    TransitionRule(OPTION_ABOUT_PRINTING, MenuState.START.value, MenuState.PRINT_1.value),
    TransitionRule(OPTION_REPORT_PROBLEM, MenuState.START.value, MenuState.PROBLEM_1.value),
    TransitionRule(OPTION_ASK_QUESTION, MenuState.START.value, MenuState.QUESTION_1.value),

    TransitionRule(OPTION_NEXT, MenuState.PRINT_1.value, MenuState.PRINT_2.value),
    TransitionRule(OPTION_NEXT, MenuState.PRINT_2.value, MenuState.PRINT_3.value),

    TransitionRule(OPTION_PRINTER, MenuState.PROBLEM_1.value, MenuState.PROBLEM_PRINTER.value),
    TransitionRule(OPTION_SYSTEM, MenuState.PROBLEM_1.value, MenuState.PROBLEM_SYSTEM.value),

    TransitionRule(OPTION_QUOTA, MenuState.QUESTION_1.value, MenuState.PRINT_1.value),
    TransitionRule(OPTION_HOURS, MenuState.QUESTION_1.value, MenuState.QUESTION_HOURS.value),

    # Available from anywhere
    TransitionRule(OPTION_RESTART, WILDCARD, MenuState.START.value),
]


def build_menu_grammar() -> MenuGrammar:
    """
    Builds and validates the printing help desk grammar.

    Raises:
        ConfigurationError: If the tables above are inconsistent
    """
    return MenuGrammar(
        initial_state=MenuState.START.value,
        rules=TRANSITION_RULES,
        content=STATE_CONTENT,
    )
