"""Registry (rendezvous) service for fragswarm.

Módulos:
- ``protocol`` define o formato dos datagramas REGISTER/UPDATE/QUERY.
- ``peer_db`` guarda os peers vivos por item, com remoção por inatividade.
- ``request_handler`` aplica cada comando à ``PeerDatabase``.
- ``server`` roda o loop UDP e a varredura periódica.
- ``config`` e ``main`` cuidam de configuração e inicialização do processo.
"""
