"""Peer runtime for fragswarm.

Módulos do peer:
- ``config`` carrega parâmetros de arquivo JSON e da linha de comando.
- ``fragments`` divide um arquivo em fragmentos de tamanho fixo.
- ``peer_connection`` implementa o protocolo de transferência (um pedido por conexão TCP).
- ``peer_server`` serve os fragmentos e mantém o registro no registry.
- ``keep_alive`` envia REGISTER uma vez e UPDATE periodicamente.
- ``registry_connection`` encapsula as chamadas ao registry.
- ``state`` modela a sessão de download.
- ``fetch_client`` orquestra descoberta, download paralelo e montagem.
- ``progress`` exibe o progresso com ``tqdm``.
"""
