from __future__ import annotations

import re

from .config import get_default_language

SUPPORTED_LANGUAGES = ("en", "it")

TRANSLATIONS: dict[str, dict] = {
    "en": {
        "common": {
            "unexpectedError": "Something went wrong. Please try again.",
        },
        "auth": {
            "invalidToken": "Invalid token",
            "tokenExpired": "Token expired",
        },
        "home": {
            "userNotFound": "User not found",
            "requestMissingError": "Error: Request no longer exists",
            "requestNotPendingError": "Error: Request is not pending",
            "requestNotRecipient": "Only the recipient can answer this request.",
            "requestNotSender": "Only the sender can withdraw this request.",
            "cannotAddSelf": "You cannot send a friend request to yourself.",
            "alreadyFriends": "You are already friends with {{name}}.",
            "requestAlreadySent": "A friend request to {{name}} is already pending.",
            "sendRequestError": "Error sending friend request.",
        },
        "friend": {
            "notFriends": "You can only record matches with your friends.",
            "invalidWinner": "The winner must be one of the two players.",
            "futureDate": "The match date cannot be in the future.",
            "matchNotFound": "Match not found.",
            "deleteMatchUnauthorized": "Only the player who recorded the match can delete it.",
            "saveMatchError": "Error saving the match.",
            "deleteMatchError": "Error deleting the match.",
        },
        "groups": {
            "createError": "Error creating group. Please try again.",
            "nameRequired": "The group name is required.",
            "nameTooLong": "The group name cannot exceed {{max}} characters.",
        },
        "group": {
            "notFound": "Group not found.",
            "notMember": "You are not a member of this group.",
            "deleteGroupUnauthorized": "Only the admin can delete the group.",
            "deleteGroupError": "Error deleting the group.",
            "alreadyMember": "{{name}} is already a member of this group.",
            "addMemberError": "Error adding member.",
            "unregisteredNameRequired": "The guest name is required.",
            "unregisteredNameExists": "A guest with this name already exists in this group.",
            "createUnregisteredError": "Error creating guest player.",
            "guestNotFound": "Guest player not found.",
            "guestAlreadyLinked": "This guest is already linked to a registered user.",
            "linkUserError": "Error linking user.",
            "linkEmptiesTeam": "{{name}} played against this guest alone. Linking would leave a match without opponents.",
            "emptyTeam": "Each team needs at least one player.",
            "overlappingTeams": "A player cannot be on both teams.",
            "unknownPlayer": "Player {{id}} is not part of this group.",
            "invalidWinningTeam": "The winning team must be A or B.",
            "futureDate": "The match date cannot be in the future.",
            "saveMatchError": "Error saving the match.",
            "matchNotFound": "Match not found.",
            "deleteMatchUnauthorized": "Only the player who recorded the match can delete it.",
            "deleteMatchError": "Error deleting the match.",
            "invalidView": "Unknown ranking period.",
            "invalidSort": "Unknown ranking order.",
            "pointsAwarded": "+{{points}} points for winners",
        },
        "login": {
            "usernameTooShort": "Username must be at least 3 characters",
            "usernameTooLong": "Username cannot exceed 20 characters",
            "usernameInvalid": "Username can only contain letters, numbers and underscores",
            "usernameTaken": "This username is already taken",
            "usernameSaveError": "Failed to set username",
            "signInError": "Failed to sign in",
            "invalidCredentials": "Wrong user id or sign-in secret",
        },
    },
    "it": {
        "common": {
            "unexpectedError": "Qualcosa è andato storto. Riprova.",
        },
        "auth": {
            "invalidToken": "Token non valido",
            "tokenExpired": "Token scaduto",
        },
        "home": {
            "userNotFound": "Utente non trovato",
            "requestMissingError": "Errore: la richiesta non esiste più",
            "requestNotPendingError": "Errore: la richiesta non è più in attesa",
            "requestNotRecipient": "Solo il destinatario può rispondere a questa richiesta.",
            "requestNotSender": "Solo il mittente può ritirare questa richiesta.",
            "cannotAddSelf": "Non puoi inviare una richiesta di amicizia a te stesso.",
            "alreadyFriends": "Sei già amico di {{name}}.",
            "requestAlreadySent": "Una richiesta di amicizia a {{name}} è già in attesa.",
            "sendRequestError": "Errore nell'invio della richiesta di amicizia.",
        },
        "friend": {
            "notFriends": "Puoi registrare partite solo con i tuoi amici.",
            "invalidWinner": "Il vincitore deve essere uno dei due giocatori.",
            "futureDate": "La data della partita non può essere nel futuro.",
            "matchNotFound": "Partita non trovata.",
            "deleteMatchUnauthorized": "Solo chi ha registrato la partita può eliminarla.",
            "saveMatchError": "Errore durante il salvataggio della partita.",
            "deleteMatchError": "Errore durante la cancellazione della partita.",
        },
        "groups": {
            "createError": "Errore nella creazione del gruppo. Riprova.",
            "nameRequired": "Il nome del gruppo è obbligatorio.",
            "nameTooLong": "Il nome del gruppo non può superare {{max}} caratteri.",
        },
        "group": {
            "notFound": "Gruppo non trovato.",
            "notMember": "Non sei membro di questo gruppo.",
            "deleteGroupUnauthorized": "Solo l'admin può eliminare il gruppo.",
            "deleteGroupError": "Errore durante l'eliminazione del gruppo.",
            "alreadyMember": "{{name}} è già membro di questo gruppo.",
            "addMemberError": "Errore durante l'aggiunta del membro.",
            "unregisteredNameRequired": "Il nome dell'ospite è obbligatorio.",
            "unregisteredNameExists": "Esiste già un ospite con questo nome in questo gruppo.",
            "createUnregisteredError": "Errore durante la creazione dell'ospite.",
            "guestNotFound": "Ospite non trovato.",
            "guestAlreadyLinked": "Questo ospite è già collegato a un utente registrato.",
            "linkUserError": "Errore durante il collegamento.",
            "linkEmptiesTeam": "{{name}} ha giocato da solo contro questo ospite. Il collegamento lascerebbe una partita senza avversari.",
            "emptyTeam": "Ogni squadra deve avere almeno un giocatore.",
            "overlappingTeams": "Un giocatore non può stare in entrambe le squadre.",
            "unknownPlayer": "Il giocatore {{id}} non fa parte di questo gruppo.",
            "invalidWinningTeam": "La squadra vincente deve essere A o B.",
            "futureDate": "La data della partita non può essere nel futuro.",
            "saveMatchError": "Errore durante il salvataggio della partita.",
            "matchNotFound": "Partita non trovata.",
            "deleteMatchUnauthorized": "Solo chi ha registrato la partita può eliminarla.",
            "deleteMatchError": "Errore durante la cancellazione della partita.",
            "invalidView": "Periodo di classifica sconosciuto.",
            "invalidSort": "Ordinamento della classifica sconosciuto.",
            "pointsAwarded": "+{{points}} punti per i vincitori",
        },
        "login": {
            "usernameTooShort": "Il nome utente deve essere di almeno 3 caratteri",
            "usernameTooLong": "Il nome utente non può superare 20 caratteri",
            "usernameInvalid": "Il nome utente può contenere solo lettere, numeri e underscore",
            "usernameTaken": "Questo nome utente è già in uso",
            "usernameSaveError": "Impossibile salvare il nome utente",
            "signInError": "Accesso non riuscito",
            "invalidCredentials": "ID utente o codice di accesso errato",
        },
    },
}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def _lookup(dictionary: dict, key: str):
    node = dictionary
    for segment in key.split("."):
        if not isinstance(node, dict) or segment not in node:
            return None
        node = node[segment]
    return node


def normalize_language(value: str | None) -> str:
    """Pick a supported language from a code or an ``Accept-Language`` header."""
    if value:
        for part in value.split(","):
            code = part.split(";")[0].strip().lower()[:2]
            if code in SUPPORTED_LANGUAGES:
                return code
    default = get_default_language()
    return default if default in SUPPORTED_LANGUAGES else "en"


def translate(key: str, language: str | None = None, **values) -> str:
    """Resolve ``key`` in ``language``, falling back to English, then to the key."""
    lang = normalize_language(language)
    text = _lookup(TRANSLATIONS[lang], key)
    if not isinstance(text, str):
        text = _lookup(TRANSLATIONS["en"], key)
    if not isinstance(text, str):
        return key
    if not values:
        return text
    return _PLACEHOLDER.sub(
        lambda m: str(values[m.group(1)]) if m.group(1) in values else m.group(0),
        text,
    )


__all__ = ["SUPPORTED_LANGUAGES", "TRANSLATIONS", "normalize_language", "translate"]
