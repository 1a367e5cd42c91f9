class LeviError(Exception):
    status_code = 500
    default_title = "Erro"
    default_detail = "Nao foi possivel concluir a operacao. Tente novamente."

    def __init__(self, detail=None, title=None):
        self.title = title or self.default_title
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    def to_dict(self):
        return {"title": self.title, "detail": self.detail}


class ScheduleValidationError(LeviError):
    status_code = 400
    default_title = "Preencha todos os campos"
    default_detail = "Data, membros e horarios sao obrigatorios."


class MemberBlockedError(LeviError):
    status_code = 400
    default_title = "Membro indisponivel"
    default_detail = "Este membro nao pode ser escalado nesta data."


class ScheduleConflictError(LeviError):
    status_code = 409
    default_title = "Conflito de horario"
    default_detail = "Um ou mais membros ja possuem escala neste horario."


class ScheduleCreationError(LeviError):
    status_code = 500
    default_title = "Erro ao criar escala"
    default_detail = "Nao foi possivel criar a escala. Tente novamente."


class ScheduleAlreadyAnsweredError(LeviError):
    status_code = 409
    default_title = "Ja processado"
    default_detail = "Esta escala ja foi respondida anteriormente."


class ScheduleExpiredError(LeviError):
    status_code = 400
    default_title = "Escala expirada"
    default_detail = "Esta escala ja passou. Nao e possivel confirmar ou recusar escalas passadas."


class AvailabilityConflictError(LeviError):
    status_code = 409
    default_title = "Disponibilidade atualizada"
    default_detail = "Sua disponibilidade foi atualizada em outra aba. Tente novamente."


class PastDateError(LeviError):
    status_code = 400
    default_title = "Data passada"
    default_detail = "Nao e possivel alterar a disponibilidade de datas passadas."


class DuplicateBlackoutDateError(LeviError):
    status_code = 400
    default_title = "Data ja adicionada"
    default_detail = "Esta data ja esta na lista de bloqueio."


class SuggestionError(LeviError):
    status_code = 400
    default_title = "Erro ao gerar escalas"
    default_detail = "Nao foi possivel gerar as escalas automaticas."
