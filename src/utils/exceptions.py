"""
Exceptions personnalisées pour le bot musical.

Définit les exceptions levées par le résolveur, le pipeline de transcodage
et le moteur de lecture. Les erreurs de validation (index, volume, boucle)
sont renvoyées telles quelles à l'utilisateur.
"""


class MusicBotException(Exception):
    """
    Exception de base pour toutes les erreurs du bot musical.

    Attributes:
        message (str): Message d'erreur détaillé
        code (int): Code d'erreur optionnel
    """
    def __init__(self, message: str, code: int = None):
        self.message = message
        self.code = code
        super().__init__(self.message)


class ResolutionError(MusicBotException):
    """
    Le résolveur n'a retourné aucune URL ou titre exploitable.

    Examples:
        >>> raise ResolutionError("yt-dlp did not return a media url")
    """
    pass


class PipelineSpawnError(MusicBotException):
    """
    Le binaire ffmpeg est introuvable ou n'a pas pu démarrer.
    """
    pass


class StreamError(MusicBotException):
    """
    Le flux audio a échoué après que le pipeline soit en lecture.
    """
    pass


class VoiceError(MusicBotException):
    """
    Exception levée pour les erreurs de connexion vocale.

    Examples:
        >>> raise VoiceError("Impossible de rejoindre le canal vocal")
    """
    pass


class QueueError(MusicBotException):
    """
    Exception levée pour les erreurs liées à la file d'attente.
    """
    pass


class InvalidIndex(QueueError):
    """Position hors de la file d'attente (les positions commencent à 1)."""

    def __init__(self, index, length: int):
        self.index = index
        self.length = length
        super().__init__(f"Invalid queue position {index!r} (queue has {length} item(s))")


class InvalidVolume(MusicBotException):
    """Valeur de volume non numérique."""
    pass


class InvalidLoopMode(MusicBotException):
    """Mode de boucle inconnu."""
    pass
